"""
POS receipt submission portal.

Collects retailer sales receipts (CSV upload, manual entry, spreadsheet paste),
pushes them to the mall sales API grouped by shift-day and keeps a local copy of
every accepted receipt.
"""
