"""Tests for exploration/classifier.py - binary vs. text decisions."""

import pytest

from remote_explorer.exploration.classifier import ContentClassifier, format_magic_bytes


@pytest.fixture
def classifier():
    return ContentClassifier()


class TestSignatures:
    """Known magic bytes are decisive."""

    def test_png_four_byte_prefix(self, classifier):
        result = classifier.classify("\x89PNG" + "abc" * 10)
        assert result.is_binary
        assert result.file_type == "PNG image"
        assert result.confidence == 1.0

    def test_png_full_header_from_bytes(self, classifier):
        result = classifier.classify(b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR")
        assert result.is_binary
        assert result.file_type == "PNG image"
        assert result.magic_bytes == "89 50 4e 47 0d 0a 1a 0a"

    def test_elf(self, classifier):
        result = classifier.classify("\x7fELF\x02\x01\x01")
        assert result.is_binary
        assert result.file_type == "ELF executable"

    @pytest.mark.parametrize(
        "content,label",
        [
            ("\xff\xd8\xff\xe0JFIF", "JPEG image"),
            ("GIF89a....", "GIF image"),
            ("%PDF-1.4\n", "PDF document"),
            ("PK\x03\x04rest", "ZIP archive"),
            ("\x1f\x8b\x08rest", "GZIP compressed"),
        ],
    )
    def test_other_signatures(self, classifier, content, label):
        result = classifier.classify(content)
        assert result.is_binary
        assert result.file_type == label

    def test_nul_byte_is_binary(self, classifier):
        result = classifier.classify("looks like text\0but is not")
        assert result.is_binary
        assert result.file_type == "binary"
        assert result.confidence == 1.0


class TestScripts:
    def test_shell_shebang(self, classifier):
        result = classifier.classify("#!/bin/sh\necho hi\n")
        assert not result.is_binary
        assert result.file_type == "shell-script"
        assert result.confidence == 1.0

    def test_python_shebang(self, classifier):
        assert classifier.classify("#!/usr/bin/env python3\n").file_type == "python-script"

    def test_unknown_interpreter(self, classifier):
        assert classifier.classify("#!/usr/bin/env lua\n").file_type == "script"


class TestPrintableRatio:
    def test_mostly_printable_is_text(self, classifier):
        content = "a" * 95 + "\x01" * 5
        result = classifier.classify(content)
        assert not result.is_binary
        assert result.confidence == pytest.approx(0.95)

    def test_mostly_unprintable_is_binary(self, classifier):
        result = classifier.classify("a" * 50 + "\x01" * 50)
        assert result.is_binary
        assert result.file_type == "binary"

    def test_ambiguous_band_is_low_confidence_text(self, classifier):
        result = classifier.classify("a" * 75 + "\x01" * 25)
        assert not result.is_binary
        assert result.file_type == "text"
        assert result.confidence == pytest.approx(0.75)

    def test_empty(self, classifier):
        result = classifier.classify("")
        assert not result.is_binary
        assert result.file_type == "empty"


class TestTextTypes:
    @pytest.mark.parametrize(
        "content,label",
        [
            ('{"key": 1}', "json"),
            ('<?xml version="1.0"?><a/>', "xml"),
            ("<!DOCTYPE html><html></html>", "html"),
            ("const x = 1;", "javascript"),
            ("export PATH=/bin:/usr/bin\n", "shell-script"),
            ("MODEL=abc\nREGION=eu\n", "config"),
            ("key=value\n[section]\nother=1\n", "config"),
            ("plain words here\n", "text"),
        ],
    )
    def test_labels(self, classifier, content, label):
        assert classifier.classify(content).file_type == label


def test_format_magic_bytes():
    assert format_magic_bytes("AB") == "41 42"
    assert format_magic_bytes("0123456789") == "30 31 32 33 34 35 36 37"
