# Supabase tables: git_integrations, repositories
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py and integration_service.py

"""
Expected Supabase table structure:

git_integrations:
- id: uuid (primary key, default gen_random_uuid())
- user_id: text (foreign key to users.id, ON DELETE CASCADE, not null)
- provider: git_provider enum ('GITHUB', 'GITLAB', 'BITBUCKET')
- provider_user_id: text (not null)
- provider_username: text (not null)
- access_token: text (not null) - never returned by the API
- refresh_token: text (nullable)
- token_expires_at: timestamptz (nullable)
- scopes: text[] (default '{}')
- created_at: timestamptz (default: now())
- updated_at: timestamptz (default: now())
- unique (user_id, provider) - one token per user per provider

repositories:
- id: uuid (primary key, default gen_random_uuid())
- workspace_id: uuid (foreign key to workspaces.id, ON DELETE CASCADE, not null)
- git_integration_id: uuid (foreign key to git_integrations.id, ON DELETE SET NULL)
- name: text (not null)
- full_name: text (not null) - "owner/repo"
- description: text (nullable)
- url: text (not null)
- provider: git_provider enum
- provider_repo_id: text (not null)
- default_branch: text (default: 'main')
- is_private: boolean (default: false)
- language: text (nullable)
- topics: text[] (default '{}')
- stars_count: integer (default: 0)
- forks_count: integer (default: 0)
- last_synced_at: timestamptz (nullable)
- sync_status: text (nullable) - idle, syncing, success, error
- sync_error: text (nullable)
- created_at: timestamptz (default: now())
- updated_at: timestamptz (default: now())
- unique (workspace_id, full_name) - a repository is connected once per workspace

Deleting a repository cascades to cursor_rules.
"""
