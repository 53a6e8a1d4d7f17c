"""Supabase authentication and user profiles."""
