# La Memoria de Venezuela curation API
"""
REST API over the curation pipeline.

Endpoints:
- /api/v1/tier1/* - Tier-1 watchlist import, listing and ad-hoc matching
- /api/v1/ingestion/* - Extracted entity processing and curator status
- /api/v1/review-queue/* - Pending review items, resolution and audit trail
"""
