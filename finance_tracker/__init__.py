"""
Personal Finance Tracker - Source Package

Records income and expense transactions against wallets and categories,
tracks monthly budgets, and produces aggregated reports.

DESIGN PRINCIPLES:
1. Every record belongs to exactly one user
2. A wallet balance always reflects the transactions recorded against it
3. AI proposes (receipt parsing) -> Human confirms -> System records
4. Every significant action is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Personal Finance Tracker Team"
