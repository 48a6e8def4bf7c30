"""
Transaction intake → Expense decision → Human-in-the-loop → Accounting drafts

Classifies financial events as deductible business expenses with a
deterministic rule pass and a confidence-gated LLM second opinion, then posts
accepted decisions as draft entries to freee, QuickBooks Online or Xero.
"""

__version__ = "0.1.0"
