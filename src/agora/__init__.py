"""Agora: social content backend."""
