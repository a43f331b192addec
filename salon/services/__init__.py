"""
Domain services.

- calendar_registry: branch -> Google Calendar provisioning
- permission_tracker: calendar sharing with staff accounts
- booking_service: booking creation and CRUD
- inventory_ledger: used_quantities ledger and read surfaces
- transaction_service: POS transactions (stock consumption / void)
"""
