"""
Domain services for wallets, categories, transactions, budgets, reports,
goals and loans, and receipt analysis.

Import services from their own modules; this package stays import-light so
that the audit logger can depend on `finance_tracker.services.storage`.
"""
