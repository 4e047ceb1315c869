"""Service layer for edit locks and invoice editing."""
