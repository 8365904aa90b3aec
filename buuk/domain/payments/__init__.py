"""
Payments Domain

Checkout creation and reconciliation of Stripe / PayPal events against bookings
and gift cards.

Structure:
```
buuk/domain/payments/
├── state.py             # Payment state machine and booking status projection
├── correlation.py       # Booking / gift card references carried through providers
├── errors.py            # Payment domain exceptions
├── providers.py         # Stripe and PayPal webhook adapters
├── stripe_service.py    # Stripe REST client (Checkout Sessions)
├── paypal_service.py    # PayPal REST client (Orders v2, webhook verification)
├── repository.py        # Tenant settings, bookings, gift cards, event ledger
├── reconciliation.py    # Exactly-once application of provider events
├── notifications.py     # Emails sent after a reconciliation commits
├── checkout_service.py  # Stripe sessions and PayPal orders
├── schemas.py           # Request / response schemas
└── router.py            # /payments and /webhooks endpoints
```
"""
