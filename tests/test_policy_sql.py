import pytest

from familyos.config.permissions_config import POLICY_MATRIX, RESOURCE_TABLES
from familyos.scripts.generate_rls_policies import main, render_policy_sql, rule_to_sql


def test_rule_to_sql():
    assert rule_to_sql("always") == "TRUE"
    assert rule_to_sql("never") == "FALSE"
    assert "p_created_by = p_user_id" in rule_to_sql("creator")
    assert "COALESCE(p_edit_mode, 'public') = 'public'" in rule_to_sql("creator_or_public")
    with pytest.raises(ValueError):
        rule_to_sql("sometimes")


def test_every_resource_table_gets_policies():
    sql = render_policy_sql()
    for config in RESOURCE_TABLES.values():
        table = config["table"]
        assert f"ALTER TABLE public.{table} ENABLE ROW LEVEL SECURITY;" in sql
        for operation in ("select", "insert", "update", "delete"):
            assert f'CREATE POLICY "{table}_{operation}" ON public.{table}' in sql
        assert f"CREATE TRIGGER {table}_guard_columns" in sql


def test_helper_functions_follow_decision_table():
    sql = render_policy_sql()
    for entry in POLICY_MATRIX["resource_actions"]:
        assert f"CREATE OR REPLACE FUNCTION public.can_{entry['action']}_resource(" in sql
        assert f"WHEN '{entry['role']}' THEN {rule_to_sql(entry['rule'])}" in sql


def test_member_delete_is_creator_only():
    sql = render_policy_sql()
    delete_fn = sql.split("public.can_delete_resource(", 1)[1].split("$func$ LANGUAGE", 1)[0]
    assert f"WHEN 'member' THEN {rule_to_sql('creator')}" in delete_fn
    assert "p_edit_mode, 'public'" not in delete_fn


def test_subset_of_tables():
    sql = render_policy_sql(["notes"])
    assert "public.notes" in sql
    assert "public.cards" not in sql


def test_cli_writes_file(tmp_path):
    output = tmp_path / "policies.sql"
    assert main(["-o", str(output)]) == 0
    assert output.read_text(encoding="utf-8") == render_policy_sql()
