"""
Test suite for pcl-pool

Contains:
- tests/unit/          : Unit tests for individual modules and pool scenarios
"""
