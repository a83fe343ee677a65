"""
Generate RLS Policies Script
Renders the Postgres helper functions, triggers and row-level security policies
for every shared resource table from the decision table in permissions_config.
The API applies the same table through PermissionEngine, so regenerating this
file after a change to ACTION_RULES keeps both sides in agreement.

Usage:
    python -m familyos.scripts.generate_rls_policies -o scripts/rls-policies.sql
"""

import argparse
import logging
import sys
from typing import Dict, List

from familyos.config.permissions_config import (
    ACTION_RULES, DEFAULT_VISIBILITY, GOVERNANCE_ROLES, RESOURCE_TABLES, ROLES
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

CREATOR_MATCH = "(p_created_by IS NOT NULL AND p_created_by = p_user_id)"
PUBLIC_MATCH = f"(COALESCE(p_edit_mode, '{DEFAULT_VISIBILITY}') = 'public')"


def rule_to_sql(rule: str) -> str:
    """SQL boolean expression for a decision-table rule"""
    if rule == "always":
        return "TRUE"
    if rule == "never":
        return "FALSE"
    if rule == "creator":
        return CREATOR_MATCH
    if rule == "creator_or_public":
        return f"({CREATOR_MATCH} OR {PUBLIC_MATCH})"
    raise ValueError(f"Unknown rule: {rule}")


def _role_cases(rules: Dict[str, str]) -> str:
    lines = []
    for role in ROLES:
        lines.append(f"    WHEN '{role}' THEN {rule_to_sql(rules.get(role, 'never'))}")
    return "\n".join(lines)


def render_helper_functions() -> str:
    governance_roles = ", ".join(f"'{role}'" for role in GOVERNANCE_ROLES)
    parts = [
        """CREATE OR REPLACE FUNCTION public.get_user_role(p_group_id UUID, p_user_id UUID)
RETURNS TEXT AS $func$
  SELECT role FROM public.group_members
  WHERE group_id = p_group_id AND user_id = p_user_id;
$func$ LANGUAGE SQL STABLE SECURITY DEFINER SET search_path = '';""",
        f"""CREATE OR REPLACE FUNCTION public.is_family_governor(p_group_id UUID, p_user_id UUID)
RETURNS BOOLEAN AS $func$
  SELECT COALESCE(public.get_user_role(p_group_id, p_user_id) IN ({governance_roles}), FALSE);
$func$ LANGUAGE SQL STABLE SECURITY DEFINER SET search_path = '';""",
    ]

    for action, rules in ACTION_RULES.items():
        parts.append(f"""CREATE OR REPLACE FUNCTION public.can_{action}_resource(
  p_group_id UUID,
  p_user_id UUID,
  p_created_by UUID DEFAULT NULL,
  p_edit_mode TEXT DEFAULT NULL
) RETURNS BOOLEAN AS $func$
  SELECT COALESCE(
    CASE public.get_user_role(p_group_id, p_user_id)
{_role_cases(rules)}
    END,
    FALSE
  );
$func$ LANGUAGE SQL STABLE SECURITY DEFINER SET search_path = '';""")

    parts.append("""CREATE OR REPLACE FUNCTION public.guard_resource_columns()
RETURNS TRIGGER AS $func$
BEGIN
  IF NEW.created_by IS DISTINCT FROM OLD.created_by THEN
    RAISE EXCEPTION 'created_by is immutable' USING ERRCODE = '42501';
  END IF;
  IF NEW.edit_mode IS DISTINCT FROM OLD.edit_mode
     AND NOT public.is_family_governor(OLD.group_id, auth.uid()) THEN
    RAISE EXCEPTION 'only family owners can change edit_mode' USING ERRCODE = '42501';
  END IF;
  RETURN NEW;
END;
$func$ LANGUAGE plpgsql SECURITY DEFINER SET search_path = '';""")
    return "\n\n".join(parts)


def render_table_policies(table: str) -> str:
    """Select/insert/update/delete policies and column guard for one resource table"""
    return f"""-- {table}
ALTER TABLE public.{table} ENABLE ROW LEVEL SECURITY;

DROP POLICY IF EXISTS "{table}_select" ON public.{table};
DROP POLICY IF EXISTS "{table}_insert" ON public.{table};
DROP POLICY IF EXISTS "{table}_update" ON public.{table};
DROP POLICY IF EXISTS "{table}_delete" ON public.{table};

CREATE POLICY "{table}_select" ON public.{table}
FOR SELECT USING (
  public.get_user_role(group_id, auth.uid()) IS NOT NULL
);

CREATE POLICY "{table}_insert" ON public.{table}
FOR INSERT WITH CHECK (
  public.can_create_resource(group_id, auth.uid())
  AND created_by = auth.uid()
  AND COALESCE(edit_mode, '{DEFAULT_VISIBILITY}') = '{DEFAULT_VISIBILITY}'
);

CREATE POLICY "{table}_update" ON public.{table}
FOR UPDATE USING (
  public.can_modify_resource(group_id, auth.uid(), created_by, edit_mode)
);

CREATE POLICY "{table}_delete" ON public.{table}
FOR DELETE USING (
  public.can_delete_resource(group_id, auth.uid(), created_by, edit_mode)
);

DROP TRIGGER IF EXISTS {table}_guard_columns ON public.{table};
CREATE TRIGGER {table}_guard_columns
BEFORE UPDATE ON public.{table}
FOR EACH ROW EXECUTE FUNCTION public.guard_resource_columns();"""


def render_membership_policies() -> str:
    """Only governors may change roles or remove others; anyone may leave"""
    return """-- group_members
DROP POLICY IF EXISTS "group_members_update" ON public.group_members;
DROP POLICY IF EXISTS "group_members_delete" ON public.group_members;

CREATE POLICY "group_members_update" ON public.group_members
FOR UPDATE USING (
  public.is_family_governor(group_id, auth.uid())
);

CREATE POLICY "group_members_delete" ON public.group_members
FOR DELETE USING (
  user_id = auth.uid() OR public.is_family_governor(group_id, auth.uid())
);"""


def render_policy_sql(tables: List[str] = None) -> str:
    """Full SQL script for the configured resource tables"""
    if tables is None:
        tables = [config["table"] for config in RESOURCE_TABLES.values()]
    sections = [
        "-- Generated by familyos.scripts.generate_rls_policies; do not edit by hand.",
        render_helper_functions(),
    ]
    for table in tables:
        sections.append(render_table_policies(table))
    sections.append(render_membership_policies())
    return "\n\n".join(sections) + "\n"


def main(argv: List[str] = None) -> int:
    parser = argparse.ArgumentParser(description="Render RLS policies from the family permission table")
    parser.add_argument("-o", "--output", help="File to write; defaults to stdout")
    args = parser.parse_args(argv)

    sql = render_policy_sql()
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(sql)
        logger.info(f"Wrote policies for {len(RESOURCE_TABLES)} tables to {args.output}")
    else:
        sys.stdout.write(sql)
    return 0


if __name__ == "__main__":
    sys.exit(main())
