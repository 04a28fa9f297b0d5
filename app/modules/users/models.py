# Supabase table: users
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py
# Authentication is handled by Clerk; rows here mirror Clerk users

"""
Expected Supabase table structure:

users:
- id: text (primary key) - Clerk user ID, e.g. "user_2abc..."
- email: text (unique, not null) - lowercased
- name: text (nullable)
- username: text (unique, nullable) - lowercased
- picture: text (nullable) - avatar URL
- locale: text (default: 'en-US')
- email_verified: boolean (default: false)
- two_factor_enabled: boolean (default: false)
- provider: text (default: 'email') - values: email, github, google, openid
- created_at: timestamptz (default: now())
- updated_at: timestamptz (default: now())

Deleting a user cascades to workspaces (owner_id), workspace_members and
git_integrations.
"""
