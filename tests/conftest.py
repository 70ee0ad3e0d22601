"""Shared fixtures: a fresh board on a temp directory."""

import random

import pytest

from flatban.board import Board


@pytest.fixture
def board_root(tmp_path):
    return tmp_path


@pytest.fixture
def board(board_root):
    """An initialized board with the default columns and a seeded id generator."""
    b = Board(board_root, rng=random.Random(1234))
    b.init("Test Board")
    return b
