"""
Collection Query Contract

Builds and parses the filter/projection/sort parameters used to read the
slots, appointments and appointments_drafts collections:

	filter[and][<field>]=<value>
	filter[and][<field>][$gte]=<date>
	filter[<field>]=<value>
	proj[<field>]=1
	sort[<field>]=1 | -1
"""

import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

OPERATORS = {
	"$eq": "=",
	"$ne": "!=",
	"$gt": ">",
	"$gte": ">=",
	"$lt": "<",
	"$lte": "<=",
	"$in": "in",
}

_FILTER_KEY = re.compile(r"^filter(?:\[(and)\])?\[([^\]\[]+)\](?:\[(\$\w+)\])?$")
_PROJ_KEY = re.compile(r"^proj\[([^\]\[]+)\]$")
_SORT_KEY = re.compile(r"^sort\[([^\]\[]+)\]$")


class ParsedQuery:
	"""Filters, projection and sort extracted from a parameter dict."""

	def __init__(self):
		self.filters: List[Tuple[str, str, Any]] = []
		self.projection: List[str] = []
		self.sort: List[Tuple[str, int]] = []

	def __repr__(self):
		return f"<ParsedQuery filters={self.filters} projection={self.projection} sort={self.sort}>"


def format_datetime_param(value: datetime) -> str:
	"""Serialize a UTC wall-clock datetime the way the collections store it."""
	return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def build_params(
	filters: Optional[Dict[str, Any]] = None,
	projection: Optional[List[str]] = None,
	sort: Optional[Dict[str, int]] = None,
) -> Dict[str, Any]:
	"""
	Build query parameters for a collection read.

	Args:
		filters: {field: value} or {field: {"$gte": value, ...}}
		projection: fields to return
		sort: {field: 1 | -1}

	Returns:
		dict: flat parameter dict, e.g. {"filter[and][urgency]": False, "proj[start]": 1}
	"""
	params = {}

	for field, value in (filters or {}).items():
		if isinstance(value, dict):
			for op, operand in value.items():
				if op not in OPERATORS:
					raise ValueError(f"Unsupported operator {op} for {field}")
				params[f"filter[and][{field}][{op}]"] = _serialize(operand)
		else:
			params[f"filter[and][{field}]"] = _serialize(value)

	for field in projection or []:
		params[f"proj[{field}]"] = 1

	for field, direction in (sort or {}).items():
		params[f"sort[{field}]"] = 1 if direction >= 0 else -1

	return params


def parse_params(params: Dict[str, Any]) -> ParsedQuery:
	"""
	Parse query parameters back into filters, projection and sort.

	Unknown keys are rejected so a typo never turns into an unfiltered read.
	"""
	query = ParsedQuery()

	for key, value in (params or {}).items():
		match = _FILTER_KEY.match(key)
		if match:
			_, field, op = match.groups()
			op = op or "$eq"
			if op not in OPERATORS:
				raise ValueError(f"Unsupported operator {op} in {key}")
			query.filters.append((field, OPERATORS[op], _coerce(value)))
			continue

		match = _PROJ_KEY.match(key)
		if match:
			if str(value) in ("1", "True", "true"):
				query.projection.append(match.group(1))
			continue

		match = _SORT_KEY.match(key)
		if match:
			query.sort.append((match.group(1), -1 if int(value) < 0 else 1))
			continue

		raise ValueError(f"Invalid query parameter: {key}")

	return query


def _serialize(value: Any) -> Any:
	if isinstance(value, datetime):
		return format_datetime_param(value)
	if isinstance(value, (list, tuple)):
		return [_serialize(v) for v in value]
	return value


def _coerce(value: Any) -> Any:
	# Query strings carry booleans as text
	if isinstance(value, str):
		lowered = value.lower()
		if lowered == "true":
			return True
		if lowered == "false":
			return False
	return value
