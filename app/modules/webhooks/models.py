# Supabase table: webhook_deliveries
# Ledger of processed Clerk (Svix) deliveries; the primary key turns a
# redelivery into a unique violation

"""
Expected Supabase table structure:

webhook_deliveries:
- id: text (primary key) - svix-id header of the delivery
- event_type: text (not null) - e.g. user.created
- received_at: timestamptz (default: now())
"""
