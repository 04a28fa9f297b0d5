# Supabase tables: user_ai_preferences, ai_usage_statistics
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

user_ai_preferences:
- user_id: text (primary key, foreign key to users.id, ON DELETE CASCADE)
- default_provider: text (default: 'groq')
- default_model: text (default: 'llama-3.3-70b-versatile')
- default_temperature: numeric(3,2) (default: 0.7, 0..2)
- default_max_tokens: integer (nullable, 1..100000)
- total_tokens_used: bigint (default: 0)
- total_requests_count: bigint (default: 0)
- last_used_at: timestamptz (nullable)
- created_at: timestamptz (default: now())
- updated_at: timestamptz (default: now())

ai_usage_statistics:
- id: uuid (primary key, default gen_random_uuid())
- user_id: text (foreign key to users.id, ON DELETE CASCADE)
- workspace_id: uuid (nullable, foreign key to workspaces.id, ON DELETE CASCADE)
- repository_id: uuid (nullable, foreign key to repositories.id, ON DELETE CASCADE)
- provider: text
- model: text
- prompt_tokens, completion_tokens, total_tokens: integer (default: 0)
- estimated_cost: numeric(10,6) (nullable, USD)
- generation_time_ms: integer (nullable)
- created_at: timestamptz (default: now())

Only model preferences and token counts are stored. Provider API keys stay
in the environment.
"""
