"""
Replication services - every service receives its engine and
MultiLangConfig explicitly, nothing reads global settings.
"""
from langshadow.services.constraint_inspector import ConstraintInspector
from langshadow.services.schema_provisioner import SchemaProvisioner
from langshadow.services.replication_service import Replicator
from langshadow.services.consistency_service import ConsistencyService
from langshadow.services.reconciler import Reconciler
from langshadow.services.creation_hook import CreationHook, ReplicationTaskHandler
from langshadow.services.task_queue import InlineDispatcher, RedisTaskQueue, ReplicationWorker
from langshadow.services.language_service import LanguageService
from langshadow.services.multilang_service import MultiLangService

__all__ = [
    "ConstraintInspector",
    "SchemaProvisioner",
    "Replicator",
    "ConsistencyService",
    "Reconciler",
    "CreationHook",
    "ReplicationTaskHandler",
    "InlineDispatcher",
    "RedisTaskQueue",
    "ReplicationWorker",
    "LanguageService",
    "MultiLangService",
]
