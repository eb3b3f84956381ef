"""
Unit tests for the domain models.
"""

import os
import sys
import unittest
from datetime import datetime

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..')))

from synthex.core.models import (
    AIAgent,
    Creation,
    EvolutionTree,
    PaginationCursor,
    PlatformStats,
    User,
    lineage_violations,
)


class TestParsing(unittest.TestCase):

    def test_creation_from_camel_case(self):
        creation = Creation.from_dict({
            "id": 7,
            "agentId": "a1",
            "generation": 2,
            "parentId": "c3",
            "likes": 4,
            "tags": "neon, city ,",
            "timestamp": "2024-05-01T10:00:00.000Z",
            "title": "Neon City",
        })
        self.assertEqual(creation.id, "7")
        self.assertEqual(creation.parent_id, "c3")
        self.assertFalse(creation.is_root)
        self.assertEqual(creation.tags, ["neon", "city"])
        self.assertIsInstance(creation.timestamp, datetime)
        self.assertEqual(creation.with_likes(9).likes, 9)
        self.assertEqual(creation.likes, 4)

    def test_agent_defaults(self):
        agent = AIAgent.from_dict({"id": "a1", "name": "Nova"})
        self.assertEqual(agent.status, "idle")
        self.assertEqual(agent.creative_dna.complexity, 0)

    def test_user_round_trip(self):
        user = User.from_dict({"id": 1, "name": "Al", "email": "a@b.com"})
        self.assertEqual(User.from_dict(user.to_dict()), user)
        self.assertEqual(user.plan, "free")

    def test_known_status_and_plan_are_kept(self):
        self.assertEqual(AIAgent.from_dict({"id": "a1", "name": "Nova", "status": "evolving"}).status, "evolving")
        self.assertEqual(User.from_dict({"id": "u1", "plan": "enterprise"}).plan, "enterprise")

    def test_unknown_status_and_plan_fall_back(self):
        self.assertEqual(AIAgent.from_dict({"id": "a1", "name": "Nova", "status": "sleeping"}).status, "idle")
        self.assertEqual(User.from_dict({"id": "u1", "plan": "platinum"}).plan, "free")

    def test_stats_fallback(self):
        stats = PlatformStats.fallback()
        self.assertEqual(
            (stats.total_agents, stats.total_creations, stats.total_evolutions, stats.active_agents),
            (8, 2836, 10253, 6),
        )


class TestPaginationCursor(unittest.TestCase):

    def test_has_more_is_recomputed(self):
        cursor = PaginationCursor.from_dict({"offset": 40, "limit": 20, "total": 45, "hasMore": True})
        self.assertFalse(cursor.has_more)
        self.assertEqual(cursor.next_offset, 60)

    def test_compute(self):
        self.assertTrue(PaginationCursor.compute(0, 20, 45).has_more)
        self.assertFalse(PaginationCursor.compute(20, 20, 40).has_more)


class TestLineage(unittest.TestCase):

    def test_valid_lineage(self):
        creations = [
            Creation(id="r", agent_id="a", generation=0),
            Creation(id="c1", agent_id="a", generation=1, parent_id="r"),
            Creation(id="c2", agent_id="a", generation=3, parent_id="c1"),
        ]
        self.assertEqual(lineage_violations(creations), [])

    def test_child_not_above_parent(self):
        creations = [
            Creation(id="r", agent_id="a", generation=2),
            Creation(id="c1", agent_id="a", generation=2, parent_id="r"),
        ]
        self.assertEqual(lineage_violations(creations), ["c1"])

    def test_parent_outside_window_is_not_checked(self):
        creations = [Creation(id="c1", agent_id="a", generation=1, parent_id="elsewhere")]
        self.assertEqual(lineage_violations(creations), [])

    def test_evolution_tree(self):
        tree = EvolutionTree.from_dict({
            "tree": {
                "id": "r", "generation": 0, "agentId": "a",
                "children": [
                    {"id": "c1", "generation": 1, "agentId": "a", "children": [
                        {"id": "c2", "generation": 1, "agentId": "a"},
                    ]},
                ],
            },
            "stats": {"totalNodes": 3, "maxGeneration": 1, "rootId": "r"},
        })
        self.assertEqual([n.id for n in tree.root.walk()], ["r", "c1", "c2"])
        self.assertEqual(tree.total_nodes, 3)
        self.assertEqual(tree.lineage_violations(), ["c2"])


if __name__ == "__main__":
    unittest.main()
