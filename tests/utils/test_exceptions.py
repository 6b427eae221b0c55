from obsred.utils import exceptions as exc


def test_str():
    assert str(exc.SolveError("Too few stars.")) == "<SolveError> Too few stars."
    assert str(exc.ObsRedError()) == "<ObsRedError>"


def test_hierarchy():
    assert isinstance(exc.ConfigurationNotSetError(), exc.ConfigurationError)
    assert isinstance(exc.MixedWcsError(), exc.ObsRedError)


def test_missing_calibration():
    e = exc.MissingCalibrationError("No dark.", signature="ISO800_TIME30_RAWtrue")
    assert e.message == "No dark."
    assert e.signature == "ISO800_TIME30_RAWtrue"


def test_severe_error_unwraps():
    inner = exc.SolveError("fail")
    severe = exc.SevereError(exc.SevereError(inner))
    assert severe.exception is inner
