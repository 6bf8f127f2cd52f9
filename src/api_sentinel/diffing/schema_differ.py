"""Structural comparison of two OpenAPI/Swagger documents."""

import json
import logging
from typing import Any, Dict, List, Optional, Set, Tuple

from ..models import FieldDelta, MethodDelta, PathDelta, SchemaComparison
from ..utils.error_handling import DiffError, ValidationError
from .reference_resolver import ReferenceResolver

logger = logging.getLogger(__name__)

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")

ParamKey = Tuple[str, str]


class SchemaDiffer:
    """Detects structural differences between two API documents.

    The differ is a pure function of its two inputs: it holds no state
    between calls and every list it returns is sorted, so repeated calls
    with the same documents produce equal comparisons.
    """

    def compare(self, old_document: Optional[Dict[str, Any]],
                new_document: Optional[Dict[str, Any]]) -> SchemaComparison:
        """Compare two documents.

        Args:
            old_document: Previous document, or empty/None for a baseline
            new_document: Current document

        Returns:
            SchemaComparison describing path, operation and schema changes

        Raises:
            ValidationError: If either document cannot be structurally resolved
            DiffError: If the comparison itself fails
        """
        old_document = old_document or {}
        new_document = new_document or {}

        old_resolver = ReferenceResolver(old_document)
        new_resolver = ReferenceResolver(new_document)
        old_resolver.validate_references()
        new_resolver.validate_references()

        try:
            removed_paths, added_paths, modified_paths = self._compare_paths(old_resolver, new_resolver)
            schema_changes = self._compare_schema_definitions(old_resolver, new_resolver)
        except ValidationError:
            raise
        except Exception as e:
            raise DiffError(f"Schema comparison failed: {e}") from e

        comparison = SchemaComparison(
            removed_paths=removed_paths,
            added_paths=added_paths,
            modified_paths=modified_paths,
            schema_changes=schema_changes,
        )
        logger.debug(
            f"Comparison: {len(removed_paths)} removed, {len(added_paths)} added, "
            f"{len(modified_paths)} modified paths, {len(schema_changes)} schema changes"
        )
        return comparison

    # Paths and operations

    def _compare_paths(self, old: ReferenceResolver, new: ReferenceResolver):
        old_paths = self._mapping(old.document.get("paths"), "paths")
        new_paths = self._mapping(new.document.get("paths"), "paths")

        removed_paths = sorted(set(old_paths) - set(new_paths))
        added_paths = sorted(set(new_paths) - set(old_paths))

        modified_paths = []
        for path in sorted(set(old_paths) & set(new_paths)):
            path_delta = self._compare_path_methods(
                path,
                old, self._mapping(old.resolve(old_paths[path]), f"paths.{path}"),
                new, self._mapping(new.resolve(new_paths[path]), f"paths.{path}"),
            )
            if path_delta:
                modified_paths.append(path_delta)

        return removed_paths, added_paths, modified_paths

    def _compare_path_methods(self, path: str,
                              old: ReferenceResolver, old_item: Dict[str, Any],
                              new: ReferenceResolver, new_item: Dict[str, Any]) -> Optional[PathDelta]:
        old_methods = self._operations(old_item)
        new_methods = self._operations(new_item)

        removed_methods = sorted(set(old_methods) - set(new_methods), key=HTTP_METHODS.index)
        added_methods = sorted(set(new_methods) - set(old_methods), key=HTTP_METHODS.index)

        modified_methods = []
        for method in sorted(set(old_methods) & set(new_methods), key=HTTP_METHODS.index):
            location = f"{method.upper()} {path}"
            changes = self._compare_method_definitions(
                location,
                old, old_item, old_methods[method],
                new, new_item, new_methods[method],
            )
            if changes:
                modified_methods.append(MethodDelta(method=method, changes=changes))

        if removed_methods or added_methods or modified_methods:
            return PathDelta(
                path=path,
                removed_methods=removed_methods,
                added_methods=added_methods,
                modified_methods=modified_methods,
            )
        return None

    def _compare_method_definitions(self, location: str,
                                    old: ReferenceResolver, old_item: Dict[str, Any], old_op: Dict[str, Any],
                                    new: ReferenceResolver, new_item: Dict[str, Any], new_op: Dict[str, Any]) -> List[FieldDelta]:
        changes: List[FieldDelta] = []

        old_params = self._collect_parameters(old, old_item, old_op)
        new_params = self._collect_parameters(new, new_item, new_op)
        changes.extend(self._compare_method_parameters(location, old, old_params, new, new_params))

        changes.extend(self._compare_request_body(
            location,
            old, self._request_body(old, old_op, old_params),
            new, self._request_body(new, new_op, new_params),
        ))

        changes.extend(self._compare_responses(location, old_op.get("responses"), new_op.get("responses")))
        return changes

    def _compare_method_parameters(self, location: str,
                                   old: ReferenceResolver, old_params: Dict[ParamKey, Dict[str, Any]],
                                   new: ReferenceResolver, new_params: Dict[ParamKey, Dict[str, Any]]) -> List[FieldDelta]:
        changes = []

        for key in sorted(set(old_params) | set(new_params)):
            name, param_in = key
            if param_in == "body":
                continue
            old_param = old_params.get(key)
            new_param = new_params.get(key)

            if new_param is None:
                changes.append(FieldDelta("param_removed", location, field=name, param_in=param_in))
            elif old_param is None:
                kind = "required_param_added" if self._is_required(new_param) else "optional_param_added"
                changes.append(FieldDelta(kind, location, field=name, param_in=param_in))
            else:
                old_required = self._is_required(old_param)
                new_required = self._is_required(new_param)
                if not old_required and new_required:
                    changes.append(FieldDelta("param_became_required", location, field=name, param_in=param_in))
                elif old_required and not new_required:
                    changes.append(FieldDelta("param_became_optional", location, field=name, param_in=param_in))

                old_type = self._type_of(old, old_param.get("schema", old_param))
                new_type = self._type_of(new, new_param.get("schema", new_param))
                if old_type != new_type:
                    changes.append(FieldDelta(
                        "field_type_changed", location, field=name,
                        old_type=old_type, new_type=new_type, param_in=param_in,
                    ))

        return changes

    def _compare_request_body(self, location: str,
                              old: ReferenceResolver, old_body: Optional[Dict[str, Any]],
                              new: ReferenceResolver, new_body: Optional[Dict[str, Any]]) -> List[FieldDelta]:
        if old_body is None and new_body is None:
            return []
        if old_body is None:
            kind = "request_body_required" if new_body.get("required") else "request_body_added"
            return [FieldDelta(kind, location)]
        if new_body is None:
            return [FieldDelta("request_body_removed", location)]

        changes = []
        if not old_body.get("required") and new_body.get("required"):
            changes.append(FieldDelta("request_body_required", location))

        old_props, old_required = self._schema_properties(old, old_body.get("schema"))
        new_props, new_required = self._schema_properties(new, new_body.get("schema"))

        for name in sorted(set(old_props) | set(new_props)):
            if name not in new_props:
                changes.append(FieldDelta("param_removed", location, field=name, param_in="body"))
            elif name not in old_props:
                kind = "required_param_added" if name in new_required else "optional_param_added"
                changes.append(FieldDelta(kind, location, field=name, param_in="body"))
            else:
                if name not in old_required and name in new_required:
                    changes.append(FieldDelta("param_became_required", location, field=name, param_in="body"))
                elif name in old_required and name not in new_required:
                    changes.append(FieldDelta("param_became_optional", location, field=name, param_in="body"))

                old_type = self._type_of(old, old_props[name])
                new_type = self._type_of(new, new_props[name])
                if old_type != new_type:
                    changes.append(FieldDelta(
                        "field_type_changed", location, field=name,
                        old_type=old_type, new_type=new_type, param_in="body",
                    ))

        return changes

    def _compare_responses(self, location: str, old_responses: Any, new_responses: Any) -> List[FieldDelta]:
        old_codes = {str(code) for code in (old_responses or {})}
        new_codes = {str(code) for code in (new_responses or {})}

        changes = [
            FieldDelta("response_status_removed", location, value=code)
            for code in sorted(old_codes - new_codes)
        ]
        changes.extend(
            FieldDelta("response_status_added", location, value=code)
            for code in sorted(new_codes - old_codes)
        )
        return changes

    # Component schemas

    def _compare_schema_definitions(self, old: ReferenceResolver, new: ReferenceResolver) -> List[FieldDelta]:
        old_schemas = self._schema_definitions(old.document)
        new_schemas = self._schema_definitions(new.document)

        schema_changes: List[FieldDelta] = []
        for schema_name in sorted(set(old_schemas) & set(new_schemas)):
            schema_changes.extend(self._compare_schema_properties(
                schema_name,
                old, old.resolve(old_schemas[schema_name]),
                new, new.resolve(new_schemas[schema_name]),
            ))
        return schema_changes

    def _compare_schema_properties(self, schema_name: str,
                                   old: ReferenceResolver, old_schema: Any,
                                   new: ReferenceResolver, new_schema: Any) -> List[FieldDelta]:
        old_props, _ = self._schema_properties(old, old_schema)
        new_props, _ = self._schema_properties(new, new_schema)

        changes = []
        for prop in sorted(set(old_props) | set(new_props)):
            if prop not in new_props:
                changes.append(FieldDelta("response_field_removed", schema_name, field=prop))
                continue
            if prop not in old_props:
                changes.append(FieldDelta("field_added", schema_name, field=prop))
                continue

            old_type = self._type_of(old, old_props[prop])
            new_type = self._type_of(new, new_props[prop])
            if old_type != new_type:
                changes.append(FieldDelta(
                    "field_type_changed", schema_name, field=prop,
                    old_type=old_type, new_type=new_type,
                ))

            old_enum = self._enum_values(old, old_props[prop])
            new_enum = self._enum_values(new, new_props[prop])
            if old_enum is not None and new_enum is not None:
                new_keys = {_enum_key(value) for value in new_enum}
                for value in old_enum:
                    if _enum_key(value) not in new_keys:
                        changes.append(FieldDelta("enum_value_removed", schema_name, field=prop, value=str(value)))

        return changes

    # Helpers

    @staticmethod
    def _mapping(node: Any, name: str) -> Dict[str, Any]:
        if node is None:
            return {}
        if not isinstance(node, dict):
            raise ValidationError(f"'{name}' must be a mapping, got {type(node).__name__}")
        return {str(key): value for key, value in node.items()}

    @staticmethod
    def _operations(path_item: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
        operations = {}
        for key, value in path_item.items():
            method = key.lower()
            if method in HTTP_METHODS:
                operations[method] = value if isinstance(value, dict) else {}
        return operations

    def _collect_parameters(self, resolver: ReferenceResolver, path_item: Dict[str, Any],
                            operation: Dict[str, Any]) -> Dict[ParamKey, Dict[str, Any]]:
        """Merge path-level and operation-level parameters keyed by (name, in)."""
        params: Dict[ParamKey, Dict[str, Any]] = {}
        for source in (path_item.get("parameters"), operation.get("parameters")):
            if source is None:
                continue
            if not isinstance(source, list):
                raise ValidationError("'parameters' must be a list")
            for raw_param in source:
                param = resolver.resolve(raw_param)
                if not isinstance(param, dict) or "name" not in param:
                    continue
                params[(str(param["name"]), str(param.get("in", "query")))] = param
        return params

    def _request_body(self, resolver: ReferenceResolver, operation: Dict[str, Any],
                      params: Dict[ParamKey, Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """Normalise an OpenAPI 3 requestBody or a Swagger 2 body parameter to {required, schema}."""
        body = operation.get("requestBody")
        if body is not None:
            body = resolver.resolve(body)
            if not isinstance(body, dict):
                return {"required": False, "schema": None}
            content = body.get("content") or {}
            schema = None
            if isinstance(content, dict) and content:
                media_types = sorted(content)
                json_types = [m for m in media_types if "json" in m]
                media = "application/json" if "application/json" in content else (json_types or media_types)[0]
                media_object = content.get(media) or {}
                schema = media_object.get("schema") if isinstance(media_object, dict) else None
            return {"required": bool(body.get("required", False)), "schema": schema}

        for (_, param_in), param in sorted(params.items()):
            if param_in == "body":
                return {"required": bool(param.get("required", False)), "schema": param.get("schema")}
        return None

    def _schema_properties(self, resolver: ReferenceResolver, schema: Any) -> Tuple[Dict[str, Any], Set[str]]:
        """Top-level properties and required names of a schema, following $ref and allOf."""
        schema = resolver.resolve(schema)
        if not isinstance(schema, dict):
            return {}, set()

        properties: Dict[str, Any] = {}
        required: Set[str] = set()
        for member in schema.get("allOf") or []:
            member_props, member_required = self._schema_properties(resolver, member)
            properties.update(member_props)
            required |= member_required

        own_props = schema.get("properties")
        if isinstance(own_props, dict):
            properties.update({str(k): v for k, v in own_props.items()})
        own_required = schema.get("required")
        if isinstance(own_required, list):
            required |= {str(name) for name in own_required}
        return properties, required

    def _type_of(self, resolver: ReferenceResolver, schema: Any) -> Optional[str]:
        if not isinstance(schema, dict):
            return None
        ref_name = resolver.ref_name(schema)
        if ref_name:
            return ref_name
        schema_type = schema.get("type")
        if schema_type == "array":
            item_type = self._type_of(resolver, schema.get("items"))
            return f"array[{item_type}]" if item_type else "array"
        if isinstance(schema_type, list):
            return "|".join(str(t) for t in schema_type)
        return str(schema_type) if schema_type is not None else None

    @staticmethod
    def _enum_values(resolver: ReferenceResolver, schema: Any) -> Optional[List[Any]]:
        schema = resolver.resolve(schema)
        if isinstance(schema, dict) and isinstance(schema.get("enum"), list):
            return schema["enum"]
        return None

    @staticmethod
    def _is_required(param: Dict[str, Any]) -> bool:
        return bool(param.get("required", False)) or param.get("in") == "path"

    @staticmethod
    def _schema_definitions(document: Dict[str, Any]) -> Dict[str, Any]:
        components = document.get("components")
        if isinstance(components, dict) and isinstance(components.get("schemas"), dict):
            return components["schemas"]
        definitions = document.get("definitions")
        return definitions if isinstance(definitions, dict) else {}


def _enum_key(value: Any) -> str:
    # True == 1 in Python; their JSON forms differ
    return json.dumps(value, sort_keys=True, default=str)
