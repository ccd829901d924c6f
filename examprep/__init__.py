"""
Exam practice API: exam engine and billing reconciliation
"""
