"""Shared test doubles and dataset builders."""
