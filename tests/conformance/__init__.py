"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the license ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Supply conservation, cache and witness-log consistency
2. atomicity.py - All-or-nothing operation semantics
3. recall_laws.py - Lending, recall inverse and partial recall
4. revocation.py - Revocation is terminal

These tests use hypothesis for property-based testing.
"""
