"""Referent generation for rbxmx documents."""

import itertools
import secrets
import threading


class ReferentGenerator:
    """Produces referent tokens that never repeat within one generator.

    Tokens are ``RBX`` + a random session seed + a monotonic counter, so two
    generators only collide if their seeds collide, and a single generator
    never does.
    """

    PREFIX = "RBX"

    def __init__(self, seed: str | None = None):
        self.seed = (seed if seed is not None else secrets.token_hex(4)).upper()
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def next(self) -> str:
        with self._lock:
            n = next(self._counter)
        return f"{self.PREFIX}{self.seed}{n:08X}"

    __next__ = next

    def __iter__(self):
        return self
