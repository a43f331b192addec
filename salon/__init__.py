"""Salon POS booking/calendar and inventory-ledger domain services."""
