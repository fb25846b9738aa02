"""Secret generation and persistence for parameter inputs.

Generated values are keyed by parameter name, produced under a single-writer
lock so that concurrent resolution never yields two different values for one
parameter, and optionally persisted to a JSON state file so later runs reuse
them.
"""

import json
import logging
import os
import secrets
import string
import threading
from pathlib import Path
from typing import Callable, Dict, Optional

from ..exceptions import ConfigurationError
from .models import GeneratePolicy

logger = logging.getLogger(__name__)

# Braces are excluded so generated values never look like placeholders
SPECIAL_CHARACTERS = "-_.!~*()"


def generate_secret(policy: GeneratePolicy) -> str:
    """Generate a random value of at least ``policy.min_length`` characters.

    One character of every enabled class is guaranteed.
    """
    classes = []
    if policy.lower:
        classes.append(string.ascii_lowercase)
    if policy.upper:
        classes.append(string.ascii_uppercase)
    if policy.numeric:
        classes.append(string.digits)
    if policy.special:
        classes.append(SPECIAL_CHARACTERS)
    if not classes:
        raise ConfigurationError(
            "Secret generation policy disables every character class",
            config_section="inputs.default.generate",
        )

    length = max(policy.min_length, len(classes))
    alphabet = "".join(classes)
    chars = [secrets.choice(chars) for chars in classes]
    chars.extend(secrets.choice(alphabet) for _ in range(length - len(chars)))
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


class SecretStore:
    """Run-scoped secret cache with optional JSON persistence."""

    def __init__(self, state_file: Optional[Path] = None) -> None:
        self.state_file = state_file
        self._values: Dict[str, str] = {}
        self._generated: set[str] = set()
        self._lock = threading.Lock()
        if state_file is not None:
            self._load()

    def _load(self) -> None:
        assert self.state_file is not None
        if not self.state_file.exists():
            logger.debug(f"No secret state file at {self.state_file}")
            return
        try:
            data = json.loads(self.state_file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(
                f"Cannot read secret state file {self.state_file}: {e}",
                config_section="state_file",
                cause=e,
            ) from e
        stored = data.get("secrets", {}) if isinstance(data, dict) else {}
        self._values.update({str(k): str(v) for k, v in stored.items()})
        logger.info(f"Loaded {len(self._values)} stored secrets from {self.state_file}")

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._values.get(key)

    def get_or_generate(self, key: str, factory: Callable[[], str]) -> str:
        """Return the stored value for ``key``, generating it exactly once."""
        with self._lock:
            value = self._values.get(key)
            if value is None:
                value = factory()
                self._values[key] = value
                self._generated.add(key)
                logger.info(f"Generated secret value for parameter '{key}'")
            return value

    @property
    def generated_keys(self) -> set[str]:
        with self._lock:
            return set(self._generated)

    @property
    def dirty(self) -> bool:
        with self._lock:
            return bool(self._generated)

    def save(self) -> Optional[Path]:
        """Persist all secrets to the state file when new ones were generated."""
        if self.state_file is None or not self.dirty:
            return None
        with self._lock:
            payload = {"secrets": dict(sorted(self._values.items()))}
            self.state_file.parent.mkdir(parents=True, exist_ok=True)
            self.state_file.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            os.chmod(self.state_file, 0o600)
            self._generated.clear()
        logger.info(f"Saved secret state to {self.state_file}")
        return self.state_file
