from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from deptclient.api.schemas import HEALTH_QUERY, GraphQLRequest
from deptclient.logging import get_logger
from deptclient.service.client import RequestClient

logger = get_logger(__name__)

_INT_FIELDS = frozenset({"progressPercent"})
_REPORT_FIELDS = ("reportDate", "statusSummary")
_DATE_FIELDS = ("plannedStartDate", "plannedEndDate", "actualStartDate", "actualEndDate")


@dataclass(frozen=True)
class EntityType:
    """How one backend type is listed, fetched and mutated."""

    type_name: str
    list_field: str
    get_field: str
    fields: Tuple[str, ...]
    create_required: Tuple[str, ...]
    create_optional: Tuple[str, ...] = ()
    update_fields: Tuple[str, ...] = ()
    update_required: Tuple[str, ...] = ()
    list_filters: Tuple[str, ...] = ()

    @property
    def selection(self) -> str:
        return " ".join(self.fields)


def _reference(type_name: str, list_field: str, get_field: str) -> EntityType:
    """Reference data: statuses, priorities, complexities."""
    return EntityType(
        type_name=type_name,
        list_field=list_field,
        get_field=get_field,
        fields=("id", "name"),
        create_required=("name",),
        update_fields=("name",),
        update_required=("name",),
    )


ENTITY_TYPES: Dict[str, EntityType] = {
    "user": EntityType(
        type_name="User",
        list_field="users",
        get_field="user",
        fields=("id", "email", "firstName", "lastName", "note"),
        create_required=("email", "password"),
        create_optional=("firstName", "lastName", "note"),
        update_fields=("email", "password", "firstName", "lastName", "note"),
    ),
    "organization": EntityType(
        type_name="Organization",
        list_field="organizations",
        get_field="organization",
        fields=("id", "name", "description", "rootDepartmentId", "rootStaffId"),
        create_required=("name",),
        create_optional=("description",),
        update_fields=("name", "description", "rootDepartmentId", "rootStaffId"),
    ),
    "department": EntityType(
        type_name="Department",
        list_field="departments",
        get_field="department",
        fields=(
            "id",
            "name",
            "description",
            "organizationId",
            "parentDepartmentId",
            "managerId",
        ),
        create_required=("name", "organizationId"),
        create_optional=("description", "parentDepartmentId"),
        update_fields=("name", "description", "parentDepartmentId", "managerId"),
        list_filters=("organizationId",),
    ),
    "staff": EntityType(
        type_name="Staff",
        list_field="staff",
        get_field="staffMember",
        fields=(
            "id",
            "firstName",
            "lastName",
            "email",
            "phone",
            "role",
            "organizationId",
            "departmentId",
            "supervisorId",
        ),
        create_required=(
            "firstName",
            "lastName",
            "email",
            "role",
            "organizationId",
            "departmentId",
        ),
        create_optional=("phone", "supervisorId"),
        update_fields=(
            "firstName",
            "lastName",
            "email",
            "phone",
            "role",
            "departmentId",
            "supervisorId",
        ),
        list_filters=("organizationId", "departmentId"),
    ),
    "status": _reference("Status", "statuses", "status"),
    "priority": _reference("Priority", "priorities", "priority"),
    "complexity": _reference("Complexity", "complexities", "complexity"),
    "project": EntityType(
        type_name="Project",
        list_field="projects",
        get_field="project",
        fields=("id", "name", "description", "leadStaffId") + _DATE_FIELDS,
        create_required=("name",),
        create_optional=("description", "leadStaffId") + _DATE_FIELDS,
        update_fields=("name", "description", "leadStaffId") + _DATE_FIELDS,
    ),
    "task": EntityType(
        type_name="Task",
        list_field="tasks",
        get_field="task",
        fields=(
            "id",
            "name",
            "description",
            "projectId",
            "parentTaskId",
            "evaluatorId",
            "statusId",
            "priorityId",
            "complexityId",
        )
        + _DATE_FIELDS,
        create_required=("name", "projectId"),
        create_optional=(
            "description",
            "parentTaskId",
            "evaluatorId",
            "statusId",
            "priorityId",
            "complexityId",
        )
        + _DATE_FIELDS,
        update_fields=(
            "name",
            "description",
            "parentTaskId",
            "evaluatorId",
            "statusId",
            "priorityId",
            "complexityId",
        )
        + _DATE_FIELDS,
        list_filters=("projectId",),
    ),
    "task_progress": EntityType(
        type_name="TaskProgress",
        list_field="taskProgressReports",
        get_field="taskProgressReport",
        fields=("id", "taskId", "reportDate", "progressPercent", "notes"),
        create_required=("taskId", "reportDate", "progressPercent"),
        create_optional=("notes",),
        update_fields=("reportDate", "progressPercent", "notes"),
        list_filters=("taskId",),
    ),
    "task_evaluation": EntityType(
        type_name="TaskEvaluation",
        list_field="taskEvaluations",
        get_field="taskEvaluation",
        fields=(
            "id",
            "taskId",
            "evaluatorId",
            "evaluationDate",
            "evaluationNotes",
            "result",
        ),
        create_required=("taskId", "evaluatorId", "evaluationDate"),
        create_optional=("evaluationNotes", "result"),
        update_fields=("evaluatorId", "evaluationDate", "evaluationNotes", "result"),
        list_filters=("taskId",),
    ),
    "task_status_report": EntityType(
        type_name="TaskStatusReport",
        list_field="taskStatusReports",
        get_field="taskStatusReport",
        fields=("id", "taskId") + _REPORT_FIELDS,
        create_required=("taskId", "reportDate"),
        create_optional=("statusSummary",),
        update_fields=_REPORT_FIELDS,
        list_filters=("taskId",),
    ),
    "project_status_report": EntityType(
        type_name="ProjectStatusReport",
        list_field="projectStatusReports",
        get_field="projectStatusReport",
        fields=("id", "projectId") + _REPORT_FIELDS,
        create_required=("projectId", "reportDate"),
        create_optional=("statusSummary",),
        update_fields=_REPORT_FIELDS,
        list_filters=("projectId",),
    ),
}


def graphql_type(field: str, required: bool = False) -> str:
    if field == "id" or field.endswith("Id"):
        base = "ID"
    elif field in _INT_FIELDS:
        base = "Int"
    else:
        base = "String"
    return f"{base}!" if required else base


def build_operation(
    kind: str,
    field: str,
    arg_types: Dict[str, str],
    selection: Optional[str] = None,
) -> str:
    """Render a single-field query or mutation with one variable per argument."""
    operation_name = field[0].upper() + field[1:]
    var_defs = ", ".join(f"${name}: {type_}" for name, type_ in arg_types.items())
    call_args = ", ".join(f"{name}: ${name}" for name in arg_types)
    header = f"{kind} {operation_name}({var_defs})" if var_defs else f"{kind} {operation_name}"
    call = f"{field}({call_args})" if call_args else field
    body = f"{call} {{ {selection} }}" if selection else call
    return f"{header} {{ {body} }}"


def get_entity_type(entity: str) -> EntityType:
    try:
        return ENTITY_TYPES[entity]
    except KeyError:
        raise ValueError(
            f"unknown entity {entity!r}; expected one of {sorted(ENTITY_TYPES)}"
        ) from None


class EntityService:
    """CRUD helpers for the backend's entity types on top of the request client."""

    def __init__(self, client: RequestClient) -> None:
        self.client = client

    async def _run(
        self,
        kind: str,
        field: str,
        arg_types: Dict[str, str],
        variables: Dict[str, Any],
        selection: Optional[str] = None,
    ) -> Any:
        query = build_operation(kind, field, arg_types, selection)
        request = GraphQLRequest(
            query=query,
            variables=variables or None,
            operation_name=field[0].upper() + field[1:],
        )
        data = await self.client.execute(request)
        return data.get(field)

    async def list(self, entity: str, **filters: Any) -> List[Dict[str, Any]]:
        etype = get_entity_type(entity)
        unknown = set(filters) - set(etype.list_filters)
        if unknown:
            raise ValueError(f"{entity} cannot be filtered by {sorted(unknown)}")
        variables = {k: v for k, v in filters.items() if v is not None}
        arg_types = {name: graphql_type(name) for name in variables}
        result = await self._run("query", etype.list_field, arg_types, variables, etype.selection)
        return list(result or [])

    async def get(self, entity: str, id: str) -> Optional[Dict[str, Any]]:
        etype = get_entity_type(entity)
        return await self._run(
            "query", etype.get_field, {"id": "ID!"}, {"id": id}, etype.selection
        )

    async def create(self, entity: str, **fields: Any) -> Dict[str, Any]:
        etype = get_entity_type(entity)
        allowed = etype.create_required + etype.create_optional
        self._check_fields(entity, fields, allowed, etype.create_required)
        variables = {k: v for k, v in fields.items() if v is not None}
        arg_types = {
            name: graphql_type(name, name in etype.create_required) for name in variables
        }
        created = await self._run(
            "mutation", f"create{etype.type_name}", arg_types, variables, etype.selection
        )
        logger.info("entity_created", entity=entity, entity_id=(created or {}).get("id"))
        return created

    async def update(self, entity: str, id: str, **fields: Any) -> Dict[str, Any]:
        etype = get_entity_type(entity)
        self._check_fields(entity, fields, etype.update_fields, etype.update_required)
        changes = {k: v for k, v in fields.items() if v is not None}
        if not changes:
            raise ValueError(f"update of {entity} needs at least one field")
        variables: Dict[str, Any] = {"id": id, **changes}
        arg_types = {"id": "ID!"}
        arg_types.update(
            {name: graphql_type(name, name in etype.update_required) for name in changes}
        )
        return await self._run(
            "mutation", f"update{etype.type_name}", arg_types, variables, etype.selection
        )

    async def delete(self, entity: str, id: str) -> bool:
        etype = get_entity_type(entity)
        result = await self._run(
            "mutation", f"delete{etype.type_name}", {"id": "ID!"}, {"id": id}
        )
        logger.info("entity_deleted", entity=entity, entity_id=id, deleted=bool(result))
        return bool(result)

    async def assign_staff_to_task(self, task_id: str, staff_id: str) -> bool:
        return await self._link("assignStaffToTask", task_id, "staffId", staff_id)

    async def remove_staff_from_task(self, task_id: str, staff_id: str) -> bool:
        return await self._link("removeStaffFromTask", task_id, "staffId", staff_id)

    async def add_task_predecessor(self, task_id: str, predecessor_task_id: str) -> bool:
        return await self._link(
            "addTaskPredecessor", task_id, "predecessorTaskId", predecessor_task_id
        )

    async def remove_task_predecessor(
        self, task_id: str, predecessor_task_id: str
    ) -> bool:
        return await self._link(
            "removeTaskPredecessor", task_id, "predecessorTaskId", predecessor_task_id
        )

    async def health(self) -> bool:
        data = await self.client.execute(
            GraphQLRequest(query=HEALTH_QUERY, operation_name="Health")
        )
        return bool(data.get("health"))

    async def _link(self, field: str, task_id: str, other: str, other_id: str) -> bool:
        result = await self._run(
            "mutation",
            field,
            {"taskId": "ID!", other: "ID!"},
            {"taskId": task_id, other: other_id},
        )
        return bool(result)

    @staticmethod
    def _check_fields(
        entity: str,
        fields: Dict[str, Any],
        allowed: Tuple[str, ...],
        required: Tuple[str, ...],
    ) -> None:
        unknown = set(fields) - set(allowed)
        if unknown:
            raise ValueError(f"unknown {entity} fields: {sorted(unknown)}")
        missing = [name for name in required if fields.get(name) is None]
        if missing:
            raise ValueError(f"missing required {entity} fields: {missing}")
