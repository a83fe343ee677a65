# Supabase tables: notes, cards, documents, events, lists, subscriptions
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Columns shared by every resource table:
- id: uuid (primary key)
- group_id: uuid (foreign key to family_groups.id, on delete cascade)
- created_by: uuid (foreign key to auth.users.id) - never changed after insert
- edit_mode: text ('private' | 'public', NULL reads as 'public')
- created_at: timestamp (default: now())
- updated_by: uuid
- updated_at: timestamp

notes: title, content, is_important (at most one true per group)
cards: name, brand, card_number, barcode, points_balance, expiry_date, notes
documents: name, url, mime_type, file_size (max 5 MiB), file_extension
events: title, date, start_datetime, end_datetime, event_type, recurrence_pattern,
        recurrence_interval, recurrence_end_date, description
lists: title, items (jsonb array of {id, text, completed})
subscriptions: title, provider, cost, currency, billing_cycle, billing_day, payer_id,
               category, payment_method, next_payment_date, start_date, end_date,
               auto_renew, notify_days_before, is_active, description, website_url

Row-level security for these tables is generated by
familyos/scripts/generate_rls_policies.py.
"""
