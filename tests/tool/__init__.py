"""Tests for the chart-release command line tool."""
