"""CPU-bound workloads: dense matrix math, hashing, prime sieving, Fourier transforms."""

import hashlib
import hmac
import random
from collections.abc import Mapping
from typing import Any

import numpy as np

from perfbench.domain.value_objects import ParameterSpace, Scalar, WorkloadDescriptor

SEED = 42


def _matrix_setup(params: Mapping[str, Scalar], fixtures: Mapping[str, Any]) -> tuple[np.ndarray, np.ndarray]:
    size = int(params["size"])
    rng = np.random.default_rng(SEED)
    return rng.random((size, size)), rng.random((size, size))


def _matrix_run(state: tuple[np.ndarray, np.ndarray]) -> np.ndarray:
    a, b = state
    return a @ b


def _buffer_setup(params: Mapping[str, Scalar], fixtures: Mapping[str, Any]) -> bytes:
    return random.Random(SEED).randbytes(int(params["size_kb"]) * 1024)


def _sha256_run(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def _sha512_run(data: bytes) -> bytes:
    return hashlib.sha512(data).digest()


def _hmac_sha256_run(data: bytes) -> bytes:
    # The buffer doubles as its own key
    return hmac.digest(data, data, "sha256")


def _sieve_setup(params: Mapping[str, Scalar], fixtures: Mapping[str, Any]) -> int:
    return int(params["limit"])


def prime_sieve(limit: int) -> np.ndarray:
    """Sieve of Eratosthenes. Returns every prime <= limit."""
    if limit < 2:
        return np.empty(0, dtype=np.int64)
    is_prime = np.ones(limit + 1, dtype=bool)
    is_prime[:2] = False
    for p in range(2, int(limit**0.5) + 1):
        if is_prime[p]:
            is_prime[p * p :: p] = False
    return np.flatnonzero(is_prime)


def _signal_setup(params: Mapping[str, Scalar], fixtures: Mapping[str, Any]) -> np.ndarray:
    n = int(params["n"])
    rng = np.random.default_rng(SEED)
    return rng.random(n) + 1j * rng.random(n)


def naive_dft(signal: np.ndarray) -> np.ndarray:
    """O(n^2) discrete Fourier transform from the definition.

    Each output bin is the dot product of the signal with one row of the
    twiddle matrix exp(-2*pi*i*k*n/N), computed row by row.
    """
    n = len(signal)
    indices = np.arange(n)
    result = np.empty(n, dtype=np.complex128)
    for k in range(n):
        result[k] = np.dot(signal, np.exp(-2j * np.pi * k * indices / n))
    return result


def fft(signal: np.ndarray) -> np.ndarray:
    return np.fft.fft(signal)


MATRIX_MULTIPLY = WorkloadDescriptor(
    name="cpu.matrix_multiply",
    setup=_matrix_setup,
    run=_matrix_run,
    parameters=ParameterSpace.of(size=(64, 128)),
    category="cpu",
    description="Dense float64 matrix product (size x size)",
)

SHA256 = WorkloadDescriptor(
    name="cpu.sha256",
    setup=_buffer_setup,
    run=_sha256_run,
    parameters=ParameterSpace.of(size_kb=(64, 1024)),
    category="cpu",
    description="SHA-256 digest of a random buffer",
)

SHA512 = WorkloadDescriptor(
    name="cpu.sha512",
    setup=_buffer_setup,
    run=_sha512_run,
    parameters=ParameterSpace.of(size_kb=(1, 1024)),
    category="cpu",
    description="SHA-512 digest of a random buffer",
)

HMAC_SHA256 = WorkloadDescriptor(
    name="cpu.hmac_sha256",
    setup=_buffer_setup,
    run=_hmac_sha256_run,
    parameters=ParameterSpace.of(size_kb=(1, 1024)),
    category="cpu",
    description="HMAC-SHA256 of a random buffer keyed with itself",
)

PRIME_SIEVE = WorkloadDescriptor(
    name="cpu.prime_sieve",
    setup=_sieve_setup,
    run=prime_sieve,
    parameters=ParameterSpace.of(limit=(10_000, 1_000_000)),
    category="cpu",
    description="Sieve of Eratosthenes up to limit",
)

NAIVE_DFT = WorkloadDescriptor(
    name="cpu.naive_dft",
    setup=_signal_setup,
    run=naive_dft,
    parameters=ParameterSpace.of(n=(256, 1024)),
    category="cpu",
    description="Quadratic DFT of a random complex signal",
)

FFT = WorkloadDescriptor(
    name="cpu.fft",
    setup=_signal_setup,
    run=fft,
    parameters=ParameterSpace.of(n=(256, 1024)),
    category="cpu",
    description="numpy FFT of a random complex signal",
)

WORKLOADS = (MATRIX_MULTIPLY, SHA256, SHA512, HMAC_SHA256, PRIME_SIEVE, NAIVE_DFT, FFT)
