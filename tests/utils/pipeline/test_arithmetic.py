import numpy as np

from obsred.utils.pipeline.arithmetic import add, subtract, multiply, average


def test_add():
    res = add(np.array([[1, 2]], dtype=np.int32), np.array([[3, -4]], dtype=np.int32))
    assert res.dtype == np.int64
    np.testing.assert_array_equal(res, [[4, -2]])


def test_subtract():
    a = np.array([[50, 5, -100]])
    b = np.array([[10, 10, 0]])

    # larger values are subtracted, smaller ones clamped to zero, negative ones kept
    np.testing.assert_array_equal(subtract(a, b, 2, False), [[30, 0, -100]])


def test_subtract_wrap():
    a = np.array([[-40000]])
    b = np.array([[0]])

    # wraps around for 16 bit data
    np.testing.assert_array_equal(subtract(a, b, 1, True), [[25536]])

    # and for 8 bit data
    np.testing.assert_array_equal(subtract(np.array([[-200]]), b, 1, False), [[56]])


def test_multiply():
    res = multiply(np.array([[7, 8, -3]]), 1.0 / 3.0)
    np.testing.assert_array_equal(res, [[2, 3, -1]])


def test_average():
    assert average(np.array([[1, 2], [3, 6]])) == 3.0


def test_multiply_round_trip():
    grid = np.random.default_rng(42).integers(-128, 128, size=(20, 20))
    for k in [1.7, 3.0, 10.0]:
        res = multiply(multiply(grid, k), 1.0 / k)
        assert np.max(np.abs(res - grid)) <= 1
