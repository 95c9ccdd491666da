"""
Discharge Portal - Backend

Authentication and authorization core of the multi-tenant discharge
instruction platform.
"""
