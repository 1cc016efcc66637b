"""Activity tables: last access per user and per (user, course)."""

USER_LAST_ACCESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.user_last_access (
    user_id UUID PRIMARY KEY,
    last_access TIMESTAMP
)
"""

COURSE_LAST_ACCESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_last_access (
    user_id UUID,
    course_id UUID,
    last_access TIMESTAMP,
    PRIMARY KEY (user_id, course_id)
)
"""

ACTIVITY_TABLES_CQL = [
    USER_LAST_ACCESS_TABLE_CQL,
    COURSE_LAST_ACCESS_TABLE_CQL,
]
