from enum import Enum


class RolePermission(str, Enum):
    OWNER = "owner"
    GET_USERS = "get_users"
    GET_USER = "get_user"
    CREATE_USER = "create_user"
    DELETE_USER = "delete_user"
    UPDATE_USER = "update_user"
    GET_ROLES = "get_roles"
    GET_ROLE = "get_role"
    CREATE_ROLE = "create_role"
    DELETE_ROLE = "delete_role"
    UPDATE_ROLE = "update_role"
    GET_CUSTOMERS = "get_customers"
    GET_CUSTOMER = "get_customer"
    CREATE_CUSTOMER = "create_customer"
    DELETE_CUSTOMER = "delete_customer"
    UPDATE_CUSTOMER = "update_customer"
    GET_PROJECTS = "get_projects"
    GET_PROJECT = "get_project"
    CREATE_PROJECT = "create_project"


class ProjectRolePermission(str, Enum):
    OWNER = "owner"
    GET_TASK = "get_task"
    CREATE_TASK = "create_task"
    UPDATE_TASK = "update_task"
    DELETE_TASK = "delete_task"
    CREATE_REPORT = "create_report"
    GET_REPORT = "get_report"
    CREATE_INCIDENT = "create_incident"
    CREATE_ROLE = "create_role"
    UPDATE_ROLE = "update_role"
    DELETE_ROLE = "delete_role"


class ProjectStatusKind(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    FINISHED = "finished"
    BREAKDOWN = "breakdown"
    CANCELLED = "cancelled"


class ProjectTaskStatusKind(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    FINISHED = "finished"
    BREAKDOWN = "breakdown"


class ProjectMemberKind(str, Enum):
    DIRECT = "direct"
    INDIRECT = "indirect"


class ProjectIncidentKind(str, Enum):
    FIRST_AID = "first_aid"
    LOST_TIME_INJURY = "lost_time_injury"
    FATAL = "fatal"
    PROPERTY_DAMAGE = "property_damage"
    ENVIRONMENTAL = "environmental"
    NEAR_MISS = "near_miss"


class WeatherKind(str, Enum):
    SUNNY = "sunny"
    CLOUDY = "cloudy"
    RAINY = "rainy"
    SNOWY = "snowy"


class ProjectTaskQueryKind(str, Enum):
    BASE = "base"
    DEPENDENCY = "dependency"


class FileKind(str, Enum):
    PROJECT_DOCUMENTATION = "project_documentation"
    COMPANY_IMAGE = "company_image"
    CUSTOMER_IMAGE = "customer_image"
    USER_IMAGE = "user_image"
