# Supabase tables: family_groups, group_members
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

family_groups:
- id: uuid (primary key)
- name: text (not null)
- owner_id: uuid (foreign key to auth.users.id) - original creator
- invite_code: text (unique, not null)
- icon: text (default: '🏠')
- created_at: timestamp (default: now())

group_members:
- id: uuid (primary key)
- group_id: uuid (foreign key to family_groups.id, on delete cascade)
- user_id: uuid (foreign key to auth.users.id, on delete cascade)
- role: text (not null, default: 'member') - values: owner, member, viewer
- created_at: timestamp (default: now())
- unique constraint on (group_id, user_id)

The creator of a family is inserted with role 'owner'; anyone joining with the
invite code is inserted with role 'member'. Only owners change roles, and a
change overwrites the single role row.
"""
