"""
Tests for rendering settings values as -D flags.
"""

import pytest

from cmakekits.cmake.values import CMakeValue, cmakeify, define_flag
from cmakekits.core.exceptions import ConfigureError


class TestCmakeify:
    """Tests for cmakeify."""

    def test_bool(self):
        """Test booleans become BOOL TRUE/FALSE."""
        assert cmakeify(True) == CMakeValue("BOOL", "TRUE")
        assert cmakeify(False) == CMakeValue("BOOL", "FALSE")

    def test_string_escapes_semicolons(self):
        """Test semicolons in strings are escaped."""
        assert cmakeify("a;b") == CMakeValue("STRING", r"a\;b")

    def test_numbers(self):
        """Test numbers are rendered as strings."""
        assert cmakeify(17) == CMakeValue("STRING", "17")
        assert cmakeify(1.5) == CMakeValue("STRING", "1.5")

    def test_list_joined(self):
        """Test lists of strings become CMake lists."""
        assert cmakeify(["a", "b"]) == CMakeValue("STRING", "a;b")

    def test_explicit_type(self):
        """Test {type, value} mappings keep their declared type."""
        assert cmakeify({"type": "path", "value": "/opt"}) == CMakeValue("PATH", "/opt")

    @pytest.mark.parametrize("value", [None, {"value": 1}, [1, 2], object()])
    def test_unsupported(self, value):
        """Test other values are rejected."""
        with pytest.raises(ConfigureError):
            cmakeify(value)


class TestDefineFlag:
    """Tests for define_flag."""

    def test_typed(self):
        assert define_flag("CMAKE_BUILD_TYPE", "Debug") == "-DCMAKE_BUILD_TYPE:STRING=Debug"

    def test_bool(self):
        assert define_flag("BUILD_SHARED_LIBS", False) == "-DBUILD_SHARED_LIBS:BOOL=FALSE"

    def test_untyped(self):
        """Test UNKNOWN values omit the type suffix."""
        assert define_flag("X", CMakeValue("UNKNOWN", "1")) == "-DX=1"
