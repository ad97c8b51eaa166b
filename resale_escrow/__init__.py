"""
Ticket resale escrow service.
Holds buyer funds between purchase and ticket delivery, settles overdue
escrows, pays sellers out through Stripe Connect and scores listings for fraud.
"""
