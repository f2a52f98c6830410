"""Arrangement Engine for Field Collections

This package owns the lifecycle of deferred-payment arrangements:
- Splits a balance into a schedule of instalments
- Tracks which instalments are paid and what is still owed
- Applies Continue, Paid-in-Full and Defaulted payment actions
- Works out which payment reminders are due
- Composes reminder messages from agent templates
"""

__version__ = "1.0.0"
