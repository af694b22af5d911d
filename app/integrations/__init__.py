"""app.integrations — External collaborator modules.

All access to collaborators outside the database goes through a module in
this package, never via bare file or `requests` calls in services or
blueprints.

Current integrations:
  blob_store.LocalBlobStore      — uploaded document storage (store / fetch)
  draft_generator.DraftGenerator — offer-letter email draft generation (HTTP)
"""
