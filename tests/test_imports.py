"""
Smoke tests to verify all modules can be imported.
"""

def test_import_patterns():
    import patterns
    assert hasattr(patterns, '__version__')


def test_import_sandbox():
    import sandbox
    assert hasattr(sandbox, '__version__')


def test_import_verification():
    import verification
    assert hasattr(verification, '__version__')


def test_import_workbench():
    import workbench
    assert hasattr(workbench, '__version__')
