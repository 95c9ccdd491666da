"""
Discharge Portal - Gateway

Request middleware and the role access policy.
"""
