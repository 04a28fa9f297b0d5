# Supabase table: cursor_rules
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

cursor_rules:
- id: uuid (primary key, default gen_random_uuid())
- repository_id: uuid (foreign key to repositories.id, ON DELETE CASCADE, not null)
- user_id: text (Clerk user ID of the author)
- source_message_id: text (nullable)
- type: rule_type enum ('PROJECT_RULE', 'USER_RULE', 'COMMAND')
- file_name: text (not null) - no extension; added on export
- content: text (not null)
- is_active: boolean (default: false)
- apply_mode: text (nullable) - always, intelligent, specific, manual (PROJECT_RULE only)
- glob_pattern: text (nullable) - used with apply_mode 'specific'
- current_version: integer (default: 1)
- deleted_at: timestamptz (nullable) - soft delete marker
- created_at: timestamptz (default: now())
- updated_at: timestamptz (default: now())
"""
