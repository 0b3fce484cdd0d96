"""Enums for Notion property types, block types and colours."""

from enum import StrEnum


class PropertyType(StrEnum):
    """Database property types accepted by the Notion API."""

    TITLE = "title"
    RICH_TEXT = "rich_text"
    NUMBER = "number"
    SELECT = "select"
    MULTI_SELECT = "multi_select"
    DATE = "date"
    PEOPLE = "people"
    FILES = "files"
    CHECKBOX = "checkbox"
    URL = "url"
    EMAIL = "email"
    PHONE_NUMBER = "phone_number"
    FORMULA = "formula"
    ROLLUP = "rollup"
    RELATION = "relation"
    CREATED_TIME = "created_time"
    CREATED_BY = "created_by"
    LAST_EDITED_TIME = "last_edited_time"
    LAST_EDITED_BY = "last_edited_by"
    STATUS = "status"


# Types whose schema needs other databases or properties to exist first
DEFERRED_PROPERTY_TYPES = frozenset({PropertyType.RELATION, PropertyType.ROLLUP})


class BlockType(StrEnum):
    """Content block types understood by the block transformer."""

    HEADING_1 = "heading_1"
    HEADING_2 = "heading_2"
    HEADING_3 = "heading_3"
    PARAGRAPH = "paragraph"
    BULLETED_LIST_ITEM = "bulleted_list_item"
    NUMBERED_LIST_ITEM = "numbered_list_item"
    TOGGLE = "toggle"
    QUOTE = "quote"
    TO_DO = "to_do"
    CALLOUT = "callout"
    DIVIDER = "divider"
    COLUMN_LIST = "column_list"
    IMAGE = "image"


HEADING_BLOCK_TYPES = frozenset({BlockType.HEADING_1, BlockType.HEADING_2, BlockType.HEADING_3})


class CalloutColor(StrEnum):
    """Semantic colours a callout may use."""

    DEFAULT = "default"
    GRAY = "gray"
    BROWN = "brown"
    ORANGE = "orange"
    YELLOW = "yellow"
    GREEN = "green"
    BLUE = "blue"
    PURPLE = "purple"
    PINK = "pink"
    RED = "red"


class RelationType(StrEnum):
    """Relation cardinalities supported by the Notion API."""

    SINGLE_PROPERTY = "single_property"
    DUAL_PROPERTY = "dual_property"


class RollupFunction(StrEnum):
    """Aggregation functions for rollup properties."""

    COUNT = "count"
    COUNT_VALUES = "count_values"
    EMPTY = "empty"
    NOT_EMPTY = "not_empty"
    UNIQUE = "unique"
    SHOW_UNIQUE = "show_unique"
    PERCENT_EMPTY = "percent_empty"
    PERCENT_NOT_EMPTY = "percent_not_empty"
    SUM = "sum"
    AVERAGE = "average"
    MEDIAN = "median"
    MIN = "min"
    MAX = "max"
    RANGE = "range"
    EARLIEST_DATE = "earliest_date"
    LATEST_DATE = "latest_date"
    DATE_RANGE = "date_range"
    CHECKED = "checked"
    UNCHECKED = "unchecked"
    PERCENT_CHECKED = "percent_checked"
    PERCENT_UNCHECKED = "percent_unchecked"
    SHOW_ORIGINAL = "show_original"
