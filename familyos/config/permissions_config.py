"""
Permissions and Roles Configuration
This config defines the family roles, the shared resource tables, and the
decision table for every action a family member can take.
Used by the permission engine tests and by the RLS policy generator so that
the client-side checks and the database policies come from the same table.
"""

# Family roles in descending order of privilege
ROLES = ["owner", "member", "viewer"]

ROLE_PRIORITY = {
    "owner": 3,
    "member": 2,
    "viewer": 1,
}

ROLE_INFO = {
    "owner": {
        "label": "Owner",
        "description": "Full control over family and all resources",
        "icon": "👑",
    },
    "member": {
        "label": "Member",
        "description": "Can create and modify own resources and public resources",
        "icon": "👤",
    },
    "viewer": {
        "label": "Viewer",
        "description": "Can only view resources",
        "icon": "👁️",
    },
}

# Role given to the creator of a family group and to anyone joining by invite code
CREATOR_ROLE = "owner"
JOIN_ROLE = "member"

VISIBILITIES = ["private", "public"]
DEFAULT_VISIBILITY = "public"

# Shared family resources and the Supabase table backing each of them
RESOURCE_TABLES = {
    "notes": {
        "table": "notes",
        "title_column": "title",
        "description": "Family notes",
    },
    "cards": {
        "table": "cards",
        "title_column": "name",
        "description": "Loyalty and membership cards",
    },
    "documents": {
        "table": "documents",
        "title_column": "name",
        "description": "Family documents",
    },
    "events": {
        "table": "events",
        "title_column": "title",
        "description": "Family calendar events",
    },
    "lists": {
        "table": "lists",
        "title_column": "title",
        "description": "Shared lists (shopping, todo, etc.)",
    },
    "subscriptions": {
        "table": "subscriptions",
        "title_column": "title",
        "description": "Family subscriptions tracking",
    },
}

# Rules a role can have for a resource action:
#   always            - allowed for every resource
#   never             - denied for every resource
#   creator           - allowed only when the actor created the resource
#   creator_or_public - allowed when the actor created it or it is public
RULES = ["always", "never", "creator", "creator_or_public"]

# Decision table for resource actions
ACTION_RULES = {
    "create": {
        "owner": "always",
        "member": "always",
        "viewer": "never",
    },
    "modify": {
        "owner": "always",
        "member": "creator_or_public",
        "viewer": "never",
    },
    "delete": {
        "owner": "always",
        "member": "creator",
        "viewer": "never",
    },
}

# Governance actions are owner-only
GOVERNANCE_ACTIONS = {
    "change_edit_mode": "Toggle a resource between private and public",
    "manage_members": "Remove family members",
    "manage_family_settings": "Rename, change the icon of, or delete the family",
    "invite_members": "View and regenerate the invite code",
    "change_roles": "Change the role of a family member",
}

GOVERNANCE_ROLES = ["owner"]


def rule_allows(rule: str, is_creator: bool, is_public: bool) -> bool:
    """Evaluate a single decision-table rule"""
    if rule == "always":
        return True
    if rule == "creator":
        return is_creator
    if rule == "creator_or_public":
        return is_creator or is_public
    return False


def get_policy_matrix():
    """
    Returns the full decision table in a flat form
    Format: {
        "resource_actions": [
            {"action": "modify", "role": "member", "rule": "creator_or_public"},
            ...
        ],
        "governance_actions": [
            {"action": "change_roles", "roles": ["owner"], "description": "..."},
            ...
        ],
        "tables": ["notes", "cards", ...]
    }
    """
    resource_actions = []
    for action, rules in ACTION_RULES.items():
        for role in ROLES:
            resource_actions.append({
                "action": action,
                "role": role,
                "rule": rules.get(role, "never"),
            })

    governance_actions = []
    for action, description in GOVERNANCE_ACTIONS.items():
        governance_actions.append({
            "action": action,
            "roles": list(GOVERNANCE_ROLES),
            "description": description,
        })

    return {
        "resource_actions": resource_actions,
        "governance_actions": governance_actions,
        "tables": [config["table"] for config in RESOURCE_TABLES.values()],
    }


# Export the matrix for use by the policy generator
POLICY_MATRIX = get_policy_matrix()
