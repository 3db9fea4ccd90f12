"""Form state consumed whole at submission time."""

from __future__ import annotations

import secrets
from typing import Any, Callable, Iterator, Mapping

from .utils import U32_MAX, is_u32
from .workflows import Workflow

RESERVED_FIELDS = ("prompt", "name", "seed", "seed_locked")


def random_seed() -> int:
    return secrets.randbelow(U32_MAX + 1)


class FormState:
    def __init__(
        self,
        *,
        prompt: str = "",
        name: str = "",
        seed: int | None = None,
        seed_locked: bool = False,
        seed_source: Callable[[], int] = random_seed,
    ) -> None:
        self._seed_source = seed_source
        self._values: dict[str, Any] = {"prompt": prompt, "name": name}
        self.seed = seed if seed is not None else seed_source()
        self.seed_locked = seed_locked

    @property
    def seed(self) -> int:
        return self._values["seed"]

    @seed.setter
    def seed(self, value: int) -> None:
        if not is_u32(value):
            raise ValueError(f"seed must be an unsigned 32-bit integer, got {value!r}")
        self._values["seed"] = value

    @property
    def prompt(self) -> str:
        return str(self._values.get("prompt") or "")

    @property
    def name(self) -> str:
        return str(self._values.get("name") or "")

    def get(self, field: str, default: Any = None) -> Any:
        if field == "seed_locked":
            return self.seed_locked
        return self._values.get(field, default)

    def set(self, field: str, value: Any) -> None:
        if field == "seed":
            self.seed = value
            return
        if field == "seed_locked":
            self.seed_locked = bool(value)
            return
        self._values[field] = value

    def update(self, values: Mapping[str, Any]) -> None:
        for field, value in values.items():
            self.set(field, value)

    def apply_workflow(self, workflow: Workflow | None) -> None:
        """Drop the previous workflow's extra fields and seed the new defaults."""
        kept = {key: self._values[key] for key in ("prompt", "name", "seed") if key in self._values}
        self._values = kept
        if workflow is None:
            return
        for field, default in workflow.defaults().items():
            if field in RESERVED_FIELDS:
                continue
            self._values[field] = default

    def next_seed(self) -> int:
        """Apply the seed policy: reuse a locked seed, otherwise roll a fresh one."""
        if not self.seed_locked:
            self.seed = self._seed_source()
        return self.seed

    def use_seed(self, seed: int) -> None:
        self.seed = seed
        self.seed_locked = True

    def extra_fields(self) -> dict[str, Any]:
        return {key: value for key, value in self._values.items() if key not in RESERVED_FIELDS}

    def snapshot(self) -> dict[str, Any]:
        payload = dict(self._values)
        payload["seed_locked"] = self.seed_locked
        return payload

    def __iter__(self) -> Iterator[str]:
        return iter(self.snapshot())
