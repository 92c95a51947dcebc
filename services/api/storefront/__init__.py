"""Storefront API: store listings, reports and transactional mail."""
