"""Lunia storefront server: table store, remote procedures and REST API."""
