from sandbox.errors import ErrorKind
from verification import differ
from verification.schemas import ComparisonStatus, ErrorInfo


def test_identical_output_passes():
    result = differ.compare("* *\n* *", "* *\n* *", True)
    assert result.status == ComparisonStatus.PASS
    assert [line.equal for line in result.diff] == [True, True]


def test_trailing_whitespace_and_line_endings_are_ignored():
    result = differ.compare("*\n* *", "*\r\n* *\n\n  ", True)
    assert result.status == ComparisonStatus.PASS
    assert len(result.diff) == 2


def test_inner_whitespace_matters():
    result = differ.compare("* *", "*  *", True)
    assert result.status == ComparisonStatus.FAIL
    assert differ.unequal_lines(result)[0].index == 0


def test_diff_covers_the_longer_side():
    result = differ.compare("*\n**\n***", "*", True)
    assert result.status == ComparisonStatus.FAIL
    assert len(result.diff) == 3
    assert [line.index for line in result.diff] == [0, 1, 2]
    assert result.diff[2].actual == ""
    assert len(differ.unequal_lines(result)) == 2

    result = differ.compare("*", "*\nextra", True)
    assert len(result.diff) == 2
    assert result.diff[1].expected == ""


def test_failed_execution_is_error_with_empty_diff():
    error = ErrorInfo(kind=ErrorKind.RUNTIME, message="boom")
    result = differ.compare("*", "*", False, error)
    assert result.status == ComparisonStatus.ERROR
    assert result.diff == ()
    assert result.error == error


def test_empty_outputs_compare_equal():
    result = differ.compare("", "", True)
    assert result.status == ComparisonStatus.PASS
    assert len(result.diff) == 1


def test_normalize_output():
    assert differ.normalize_output("a\r\nb\rc  \n\n") == "a\nb\nc"
