# Supabase tables: workspaces, workspace_members
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py and lifecycle.py
# DDL lives in supabase/migrations/001_initial_schema.sql

"""
Expected Supabase table structure:

workspaces:
- id: uuid (primary key, default gen_random_uuid())
- owner_id: text (foreign key to users.id, ON DELETE CASCADE, not null) - Clerk user ID
- name: text (not null)
- is_default: boolean (not null, default false) - set on the workspace created at sign-up
- created_at: timestamptz (default: now())
- unique index on (owner_id) where is_default - at most one default workspace per user

workspace_members:
- workspace_id: uuid (foreign key to workspaces.id, ON DELETE CASCADE)
- user_id: text (foreign key to users.id, ON DELETE CASCADE) - Clerk user ID
- role: workspace_role enum ('OWNER', 'ADMIN', 'MEMBER'), default 'MEMBER'
- primary key (workspace_id, user_id)

Deleting a workspace cascades to workspace_members, repositories and, through
repositories, cursor_rules.
"""
