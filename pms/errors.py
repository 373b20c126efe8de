"""Stable error codes returned as the ``detail`` of every failed request."""
from fastapi import HTTPException, status


UNAUTHORIZED = "UNAUTHORIZED"
INVALID_ID = "INVALID_ID"
INVALID_PERIOD = "INVALID_PERIOD"
INVALID_STATUS = "INVALID_STATUS"
INVALID_COMBINATION = "INVALID_COMBINATION"
INVALID_TOKEN = "INVALID_TOKEN"
INVALID_REQUEST = "INVALID_REQUEST"

PROJECT_NOT_FOUND = "PROJECT_NOT_FOUND"
PROJECT_AREA_NOT_FOUND = "PROJECT_AREA_NOT_FOUND"
PROJECT_TASK_NOT_FOUND = "PROJECT_TASK_NOT_FOUND"
PROJECT_REPORT_NOT_FOUND = "PROJECT_REPORT_NOT_FOUND"
PROJECT_ROLE_NOT_FOUND = "PROJECT_ROLE_NOT_FOUND"
PROJECT_MEMBER_NOT_FOUND = "PROJECT_MEMBER_NOT_FOUND"
PROJECT_STATUS_MUST_BE_PENDING = "PROJECT_STATUS_MUST_BE_PENDING"
PROJECT_TASK_VALUE_SUM_MUST_BE_100 = "PROJECT_TASK_VALUE_SUM_MUST_BE_100"
PROJECT_TASK_MUST_BE_LEAF = "PROJECT_TASK_MUST_BE_LEAF"
PROJECT_TASK_MUST_BE_BASE = "PROJECT_TASK_MUST_BE_BASE"
PROJECT_MUST_HAVE_OWNER = "PROJECT_MUST_HAVE_OWNER"
PROJECT_ROLE_OWNER_IS_PROTECTED = "PROJECT_ROLE_OWNER_IS_PROTECTED"
PROJECT_REPORT_TIME_INVALID = "PROJECT_REPORT_TIME_INVALID"
PROJECT_REPORT_DOCUMENTATION_NOT_FOUND = "PROJECT_REPORT_DOCUMENTATION_NOT_FOUND"
PROJECT_REPORT_DOCUMENTATION_INVALID_LENGTH = "PROJECT_REPORT_DOCUMENTATION_INVALID_LENGTH"
PROJECT_REPORT_DOCUMENTATION_INVALID_NAME = "PROJECT_REPORT_DOCUMENTATION_INVALID_NAME"
PROJECT_REPORT_DELETION_FAILED = "PROJECT_REPORT_DELETION_FAILED"
PROJECT_VERSION_CONFLICT = "PROJECT_VERSION_CONFLICT"

USER_NOT_FOUND = "USER_NOT_FOUND"
USER_ALREADY_EXIST = "USER_ALREADY_EXIST"
USER_MUST_HAVE_VALID_EMAIL = "USER_MUST_HAVE_VALID_EMAIL"
USER_MUST_HAVE_VALID_PASSWORD = "USER_MUST_HAVE_VALID_PASSWORD"
USER_MUST_HAVE_ROLES = "USER_MUST_HAVE_ROLES"
USER_BOOTSTRAP_CONFLICT = "USER_BOOTSTRAP_CONFLICT"

ROLE_NOT_FOUND = "ROLE_NOT_FOUND"
ROLE_MUST_HAVE_VALID_PERMISSION = "ROLE_MUST_HAVE_VALID_PERMISSION"
CUSTOMER_NOT_FOUND = "CUSTOMER_NOT_FOUND"
COMPANY_NOT_FOUND = "COMPANY_NOT_FOUND"

INSERTING_FAILED = "INSERTING_FAILED"
UPDATE_FAILED = "UPDATE_FAILED"
DIRECTORY_CREATION_FAILED = "DIRECTORY_CREATION_FAILED"
CONTENT_NOT_FOUND = "CONTENT_NOT_FOUND"


def bad_request(code: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=code)


def unauthorized(code: str = UNAUTHORIZED) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=code)


def not_found(code: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=code)


def conflict(code: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=code)


def server_error(code: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=code)
