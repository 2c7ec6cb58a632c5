"""Unit tests for the nonce generator."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import hashlib
import re
from app.services.nonce_service import generate_nonce

RES = "c0ffee00-1234-4abc-9def-0123456789ab"
HOLDER = "11111111-1111-4111-8111-111111111111"


class TestGenerateNonce:
    def test_deterministic(self):
        assert generate_nonce(RES, HOLDER, "20250109") == generate_nonce(RES, HOLDER, "20250109")

    def test_four_uppercase_hex_characters(self):
        assert re.fullmatch(r"[0-9A-F]{4}", generate_nonce(RES, HOLDER, "20250109"))

    def test_last_four_of_sha256(self):
        expected = hashlib.sha256(f"{RES}{HOLDER}20250109".encode()).hexdigest()[-4:].upper()
        assert generate_nonce(RES, HOLDER, "20250109") == expected

    def test_changes_with_each_input(self):
        base = generate_nonce(RES, HOLDER, "20250109")
        others = {
            generate_nonce(RES, HOLDER, "20250110"),
            generate_nonce(RES, "22222222-2222-4222-8222-222222222222", "20250109"),
            generate_nonce("d0ffee00-1234-4abc-9def-0123456789ab", HOLDER, "20250109"),
        }
        assert base not in others
