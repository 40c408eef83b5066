"""Pytest bootstrap configuration.

Ensure environment variables are set before test collection and module
imports that depend on application settings.
"""
import os

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOG_REQUEST_BODY_ENABLE_BY_DEFAULT", "false")
os.environ.setdefault("STORE__BACKEND", "memory")
os.environ.setdefault("TRUELAYER__CALLBACK_URL", "https://merchant.example.com/api/v1/payments/callback")
os.environ.setdefault("TRUELAYER__FRONTEND_URL", "https://shop.example.com")
os.environ.setdefault("TRUELAYER__MERCHANT_ACCOUNT_ID", "ma-test")
