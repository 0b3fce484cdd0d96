"""Tests for the Notion properties module."""

import unittest

from src.notion.enums import RelationType
from src.notion.properties import (
    MAX_PROPERTIES,
    build_database_schema,
    build_relation_schema,
    build_rollup_schema,
    resolve_relation_target,
    transform_property,
)
from src.workspace.models import DatabaseSpec, PropertySpec


def _props(*specs: dict) -> list[PropertySpec]:
    return [PropertySpec.model_validate(spec) for spec in specs]


class TestTransformProperty(unittest.TestCase):
    """Tests for transform_property function."""

    def test_title_property(self) -> None:
        """Title properties have an empty schema."""
        result = transform_property(PropertySpec(name="Name", type="title"))

        self.assertEqual(result, ("Name", {"title": {}}))

    def test_number_default_format(self) -> None:
        """Numbers default to the plain number format."""
        result = transform_property(PropertySpec(name="Count", type="number"))

        self.assertEqual(result, ("Count", {"number": {"format": "number"}}))

    def test_number_explicit_format(self) -> None:
        """A declared number format is kept."""
        prop = PropertySpec.model_validate({"name": "Price", "type": "number", "format": "dollar"})

        self.assertEqual(transform_property(prop), ("Price", {"number": {"format": "dollar"}}))

    def test_select_options_from_strings_and_dicts(self) -> None:
        """Options may be strings or dicts and invalid colours fall back."""
        prop = PropertySpec.model_validate(
            {
                "name": "Priority",
                "type": "select",
                "options": ["High", {"name": "Low", "color": "green"}, {"name": "Mid", "color": "teal"}],
            }
        )

        _, schema = transform_property(prop)

        self.assertEqual(
            schema["select"]["options"],
            [
                {"name": "High", "color": "default"},
                {"name": "Low", "color": "green"},
                {"name": "Mid", "color": "default"},
            ],
        )

    def test_options_drop_blanks_and_duplicates(self) -> None:
        """Blank and repeated option names are removed."""
        prop = PropertySpec.model_validate(
            {"name": "Tags", "type": "multiselect", "config": {"options": ["a", "", "a", None, "b"]}}
        )

        name, schema = transform_property(prop)

        self.assertEqual(name, "Tags")
        self.assertEqual([o["name"] for o in schema["multi_select"]["options"]], ["a", "b"])

    def test_option_names_are_made_valid(self) -> None:
        """Commas are replaced and long names are cut to Notion's limit."""
        prop = PropertySpec.model_validate(
            {"name": "Stage", "type": "select", "options": ["Red, Blue", "x" * 150, ",", "Red  Blue"]}
        )

        _, schema = transform_property(prop)

        names = [option["name"] for option in schema["select"]["options"]]
        self.assertEqual(names, ["Red Blue", "x" * 100])

    def test_formula_default_expression(self) -> None:
        """Formulas without an expression get a constant placeholder."""
        result = transform_property(PropertySpec(name="Score", type="formula"))

        self.assertEqual(result, ("Score", {"formula": {"expression": "1"}}))

    def test_formula_expression_from_config(self) -> None:
        """A declared formula expression is used."""
        prop = PropertySpec.model_validate(
            {"name": "Total", "type": "formula", "formula": 'prop("Count") * 2'}
        )

        self.assertEqual(transform_property(prop)[1], {"formula": {"expression": 'prop("Count") * 2'}})

    def test_unknown_type_becomes_rich_text(self) -> None:
        """Unknown types degrade to rich_text."""
        result = transform_property(PropertySpec(name="Mood", type="bogus_type"))

        self.assertEqual(result, ("Mood", {"rich_text": {}}))

    def test_phone_alias(self) -> None:
        """Generator aliases resolve to Notion type names."""
        result = transform_property(PropertySpec(name="Phone", type="phone"))

        self.assertEqual(result, ("Phone", {"phone_number": {}}))

    def test_relation_and_rollup_are_deferred(self) -> None:
        """Relations and rollups are not part of the first-pass schema."""
        self.assertIsNone(transform_property(PropertySpec(name="Project", type="relation")))
        self.assertIsNone(transform_property(PropertySpec(name="Total", type="rollup")))

    def test_blank_name_is_skipped(self) -> None:
        """Properties without a name are skipped."""
        self.assertIsNone(transform_property(PropertySpec(name="  ", type="rich_text")))


class TestBuildDatabaseSchema(unittest.TestCase):
    """Tests for build_database_schema function."""

    def test_no_properties_adds_name_title(self) -> None:
        """A database without properties gets a Name title."""
        result = build_database_schema([])

        self.assertEqual(result.properties, {"Name": {"title": {}}})
        self.assertTrue(result.synthetic_title)
        self.assertEqual(result.deployed[0].type, "title")

    def test_missing_title_is_injected_first(self) -> None:
        """A fallback title is added ahead of the declared properties."""
        result = build_database_schema(_props({"name": "Notes", "type": "rich_text"}))

        self.assertEqual(list(result.properties), ["Name", "Notes"])

    def test_fallback_title_avoids_name_clash(self) -> None:
        """The fallback title uses a free name."""
        result = build_database_schema(_props({"name": "Name", "type": "rich_text"}))

        self.assertIn("Title", result.properties)
        self.assertEqual(result.properties["Title"], {"title": {}})
        self.assertEqual(result.properties["Name"], {"rich_text": {}})

    def test_fallback_title_when_all_fallback_names_taken(self) -> None:
        """A numbered title is injected when every fallback name is in use."""
        result = build_database_schema(
            _props(
                {"name": "Name", "type": "rich_text"},
                {"name": "Title", "type": "rich_text"},
                {"name": "Name (title)", "type": "rich_text"},
                {"name": "Name 2", "type": "rich_text"},
            )
        )

        self.assertTrue(result.synthetic_title)
        self.assertEqual(result.properties["Name 3"], {"title": {}})
        self.assertEqual(list(result.properties)[0], "Name 3")
        self.assertEqual(len(result.properties), 5)

    def test_extra_titles_are_demoted(self) -> None:
        """Only the first title property stays a title."""
        result = build_database_schema(
            _props({"name": "Task", "type": "title"}, {"name": "Alt", "type": "title"})
        )

        self.assertEqual(result.properties["Alt"], {"rich_text": {}})
        self.assertFalse(result.synthetic_title)
        self.assertEqual([p.type for p in result.deployed], ["title", "rich_text"])

    def test_duplicate_names_keep_first(self) -> None:
        """The first declaration of a name wins."""
        result = build_database_schema(
            _props(
                {"name": "Task", "type": "title"},
                {"name": "Due", "type": "date"},
                {"name": "Due", "type": "number"},
            )
        )

        self.assertEqual(result.properties["Due"], {"date": {}})
        self.assertEqual(len(result.deployed), 2)

    def test_deferred_types_excluded(self) -> None:
        """Relation and rollup properties are left for later passes."""
        result = build_database_schema(
            _props(
                {"name": "Task", "type": "title"},
                {"name": "Project", "type": "relation"},
                {"name": "Hours", "type": "rollup"},
            )
        )

        self.assertEqual(list(result.properties), ["Task"])

    def test_truncates_to_limit_keeping_title(self) -> None:
        """Over the limit, the title and the first other properties are kept."""
        specs = [{"name": f"Field {i}", "type": "rich_text"} for i in range(MAX_PROPERTIES)]
        specs.append({"name": "Task", "type": "title"})

        result = build_database_schema(_props(*specs))

        self.assertEqual(len(result.properties), MAX_PROPERTIES)
        self.assertEqual(result.properties["Task"], {"title": {}})
        self.assertIn("Field 98", result.properties)
        self.assertEqual(result.dropped, ["Field 99"])

    def test_custom_limit(self) -> None:
        """The limit can be lowered."""
        result = build_database_schema(
            _props(
                {"name": "Task", "type": "title"},
                {"name": "A", "type": "checkbox"},
                {"name": "B", "type": "url"},
            ),
            max_properties=2,
        )

        self.assertEqual(list(result.properties), ["Task", "A"])
        self.assertEqual(result.dropped, ["B"])


class TestRelationSchema(unittest.TestCase):
    """Tests for relation target resolution and schema building."""

    def test_target_from_relations_list(self) -> None:
        """The database's relations list is preferred."""
        database = DatabaseSpec.model_validate(
            {
                "name": "Tasks",
                "properties": [{"name": "Project", "type": "relation", "relatedDatabase": "Other"}],
                "relations": [{"property": "Project", "relatedDatabase": "Projects", "type": "dual_property"}],
            }
        )

        target, relation_type = resolve_relation_target(database, database.properties[0])

        self.assertEqual(target, "Projects")
        self.assertEqual(relation_type, RelationType.DUAL_PROPERTY)

    def test_target_from_property_config(self) -> None:
        """Without a relations entry the property config is used."""
        database = DatabaseSpec.model_validate(
            {
                "name": "Tasks",
                "properties": [{"name": "Project", "type": "relation", "config": {"database": "Projects"}}],
            }
        )

        target, relation_type = resolve_relation_target(database, database.properties[0])

        self.assertEqual(target, "Projects")
        self.assertEqual(relation_type, RelationType.SINGLE_PROPERTY)

    def test_missing_target(self) -> None:
        """A relation without a target resolves to None."""
        database = DatabaseSpec.model_validate(
            {"name": "Tasks", "properties": [{"name": "Project", "type": "relation"}]}
        )

        target, _ = resolve_relation_target(database, database.properties[0])

        self.assertIsNone(target)

    def test_build_relation_schema(self) -> None:
        """The relation schema names its type and database."""
        result = build_relation_schema("db-1", RelationType.SINGLE_PROPERTY)

        self.assertEqual(
            result,
            {"relation": {"database_id": "db-1", "type": "single_property", "single_property": {}}},
        )


class TestRollupSchema(unittest.TestCase):
    """Tests for build_rollup_schema function."""

    def test_rollup_schema(self) -> None:
        """A configured rollup produces its schema."""
        prop = PropertySpec.model_validate(
            {
                "name": "Total Hours",
                "type": "rollup",
                "config": {"relation": "Tasks", "property": "Hours", "function": "sum"},
            }
        )

        self.assertEqual(
            build_rollup_schema(prop),
            {
                "rollup": {
                    "relation_property_name": "Tasks",
                    "rollup_property_name": "Hours",
                    "function": "sum",
                }
            },
        )

    def test_rollup_unknown_function_defaults_to_count(self) -> None:
        """Unknown aggregation functions fall back to count."""
        prop = PropertySpec.model_validate(
            {"name": "N", "type": "rollup", "relationProperty": "Tasks", "rollupProperty": "Hours", "function": "median-ish"}
        )

        self.assertEqual(build_rollup_schema(prop)["rollup"]["function"], "count")

    def test_rollup_without_config(self) -> None:
        """Rollups missing their relation or source are not built."""
        prop = PropertySpec.model_validate({"name": "N", "type": "rollup", "config": {"relation": "Tasks"}})

        self.assertIsNone(build_rollup_schema(prop))


if __name__ == "__main__":
    unittest.main()
