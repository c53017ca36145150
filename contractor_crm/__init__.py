"""
Contractor CRM - Source Package

A small business-tracking tool for general contractors: client budgets,
subcontractor costs, client payments and expenses per project, with
profit/margin and cash-buffer health derived from them.

DESIGN PRINCIPLES:
1. Derived figures are recomputed on every read, never stored
2. Denormalized copies (payment allocations) stay in sync on every mutation
3. Destructive actions require explicit confirmation
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "2.0.0"
__author__ = "Contractor CRM Team"
