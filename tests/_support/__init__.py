"""
Test support utilities for strata tests.

``models`` holds the sample entity classes shared by the mapper, schema
and migration tests.  They live in an importable module (not in a test
file) so junction targets and the CLI's ``MODULE:CLASS`` lookup resolve
them by name.
"""
