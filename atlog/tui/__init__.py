"""Curses terminal UI for the live log stream."""
