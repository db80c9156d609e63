import pytest
import torch

from patchinfer.inference.dtypes import (
    SUPPORTED_DTYPES, as_dtype, clamp_cast, convert_dtype, dtype_bounds, to_host
)

INT_DTYPES = [torch.int8, torch.uint8, torch.int16, torch.int32, torch.int64]


@pytest.mark.parametrize('dtype', INT_DTYPES)
@pytest.mark.parametrize('src_dtype', [torch.float32, torch.float64])
def test_float_saturates(dtype, src_dtype):
    lo, hi = dtype_bounds(dtype)
    t = torch.tensor([-1e30, float(lo) * 4 - 10, float('-inf'), float(hi) * 4 + 10, 1e30, float('inf')],
                     dtype=src_dtype)
    out = clamp_cast(t, dtype)
    assert out.dtype == dtype
    assert out.tolist() == [lo, lo, lo, hi, hi, hi]


@pytest.mark.parametrize('dtype', INT_DTYPES)
def test_exact_integers_round_trip(dtype):
    lo, hi = dtype_bounds(dtype)
    values = [max(lo, -100), 0, 1, 42, min(hi, 100)]
    t = torch.tensor(values, dtype=torch.float64)
    assert clamp_cast(t, dtype).tolist() == values
    assert clamp_cast(clamp_cast(t, dtype), torch.float64).tolist() == values


def test_bounds_are_exact():
    t = torch.tensor([-128.0, 127.0, 127.4, 127.6], dtype=torch.float32)
    assert clamp_cast(t, torch.int8).tolist() == [-128, 127, 127, 127]
    t = torch.tensor([-2147483648.0, 2147483647.0], dtype=torch.float64)
    assert clamp_cast(t, torch.int32).tolist() == [-2147483648, 2147483647]


def test_rounds_to_nearest():
    t = torch.tensor([2.4, 2.6, -2.6, -0.4, 0.5, 1.5])
    assert clamp_cast(t, torch.int16).tolist() == [2, 3, -3, 0, 0, 2]


def test_nan_becomes_zero():
    t = torch.tensor([float('nan'), 3.0])
    assert clamp_cast(t, torch.uint8).tolist() == [0, 3]


def test_integer_narrowing():
    t = torch.tensor([-70000, -5, 0, 200, 300, 70000], dtype=torch.int32)
    assert clamp_cast(t, torch.uint8).tolist() == [0, 0, 0, 200, 255, 255]
    assert clamp_cast(t, torch.int8).tolist() == [-128, -5, 0, 127, 127, 127]
    assert clamp_cast(t, torch.int16).tolist() == [-32768, -5, 0, 200, 300, 32767]
    assert clamp_cast(t, torch.int64).tolist() == t.tolist()


def test_unsigned_to_signed():
    t = torch.tensor([0, 127, 128, 255], dtype=torch.uint8)
    assert clamp_cast(t, torch.int8).tolist() == [0, 127, 127, 127]
    t = torch.tensor([-1, 5], dtype=torch.int8)
    assert clamp_cast(t, torch.uint8).tolist() == [0, 5]


def test_float_to_float_is_plain_cast():
    t = torch.tensor([1e10, 0.1], dtype=torch.float64)
    out = convert_dtype(t, 'float16')
    assert out.dtype == torch.float16
    assert torch.isinf(out[0])
    assert out[1] == torch.tensor(0.1, dtype=torch.float16)


def test_same_dtype_is_unchanged():
    t = torch.rand(3)
    assert clamp_cast(t, torch.float32) is t


def test_as_dtype():
    assert as_dtype('float') == torch.float32
    assert as_dtype('half') == torch.float16
    assert as_dtype('torch.uint8') == torch.uint8
    assert as_dtype(torch.int64) == torch.int64
    for dtype in SUPPORTED_DTYPES:
        assert as_dtype(str(dtype)) == dtype


@pytest.mark.parametrize('dtype', ['complex64', torch.bool, 'uint128'])
def test_unsupported_dtype(dtype):
    with pytest.raises(ValueError):
        as_dtype(dtype)


def test_to_host_widens_half():
    t = torch.tensor([1.5, -2.0], dtype=torch.float16)
    out = to_host(t)
    assert out.dtype == torch.float32
    assert out.device.type == 'cpu'
    assert out.tolist() == [1.5, -2.0]
    assert to_host(torch.ones(2, dtype=torch.uint8)).dtype == torch.uint8
