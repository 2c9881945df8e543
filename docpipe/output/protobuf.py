"""Binary wire encoding of a Query.

Message classes are built at import time from descriptors that mirror
``proto/query.proto``, so no generated code has to be kept in sync.
"""

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.protobuf.message import DecodeError as WireDecodeError
from google.protobuf.message import Message

from docpipe.processor.exceptions import DecodeError
from docpipe.processor.models import Attachment, ProcessingStep, Query, QueryMetadata

PACKAGE = "processor"

_Field = descriptor_pb2.FieldDescriptorProto

# (message, [(field, number, type, repeated, message type)])
_SCHEMA: list[tuple[str, list[tuple[str, int, int, bool, str | None]]]] = [
    (
        "Attachment",
        [
            ("page", 1, _Field.TYPE_INT32, False, None),
            ("data", 2, _Field.TYPE_BYTES, False, None),
        ],
    ),
    (
        "ProcessingStep",
        [
            ("name", 1, _Field.TYPE_STRING, False, None),
            ("duration_ms", 2, _Field.TYPE_INT64, False, None),
            ("status", 3, _Field.TYPE_STRING, False, None),
            ("memory_mb", 4, _Field.TYPE_INT64, False, None),
        ],
    ),
    (
        "QueryMetadata",
        [
            ("started_at", 1, _Field.TYPE_INT64, False, None),
            ("completed_at", 2, _Field.TYPE_INT64, False, None),
            ("total_duration_ms", 3, _Field.TYPE_INT64, False, None),
            ("original_file_size", 4, _Field.TYPE_INT64, False, None),
            ("errors", 5, _Field.TYPE_STRING, True, None),
            ("steps", 6, _Field.TYPE_MESSAGE, True, "ProcessingStep"),
        ],
    ),
    (
        "Query",
        [
            ("file_type", 1, _Field.TYPE_STRING, False, None),
            ("file_path", 2, _Field.TYPE_STRING, False, None),
            ("strategy", 3, _Field.TYPE_STRING, False, None),
            ("prompt_parts", 4, _Field.TYPE_STRING, True, None),
            ("attachments", 5, _Field.TYPE_MESSAGE, True, "Attachment"),
            ("system", 6, _Field.TYPE_STRING, False, None),
            ("prompt", 7, _Field.TYPE_STRING, False, None),
            ("metadata", 8, _Field.TYPE_MESSAGE, False, "QueryMetadata"),
        ],
    ),
]


def _file_descriptor() -> descriptor_pb2.FileDescriptorProto:
    file_proto = descriptor_pb2.FileDescriptorProto(
        name=f"{PACKAGE}/query.proto", package=PACKAGE, syntax="proto3"
    )
    for message_name, fields in _SCHEMA:
        message = file_proto.message_type.add(name=message_name)
        for field_name, number, field_type, repeated, type_name in fields:
            field = message.field.add(
                name=field_name,
                number=number,
                type=field_type,
                label=_Field.LABEL_REPEATED if repeated else _Field.LABEL_OPTIONAL,
            )
            if type_name is not None:
                field.type_name = f".{PACKAGE}.{type_name}"
    return file_proto


_pool = descriptor_pool.DescriptorPool()
_pool.AddSerializedFile(_file_descriptor().SerializeToString())

QueryMessage = message_factory.GetMessageClass(_pool.FindMessageTypeByName(f"{PACKAGE}.Query"))


def to_message(query: Query) -> Message:
    message = QueryMessage(
        file_type=query.file_type,
        file_path=query.file_path,
        strategy=query.strategy,
        prompt_parts=query.prompt_parts,
        system=query.system,
        prompt=query.prompt,
    )
    for attachment in query.attachments:
        message.attachments.add(page=attachment.page, data=attachment.data)

    metadata = query.metadata
    message.metadata.started_at = metadata.started_at
    message.metadata.completed_at = metadata.completed_at
    message.metadata.total_duration_ms = metadata.total_duration_ms
    message.metadata.original_file_size = metadata.original_file_size
    message.metadata.errors.extend(metadata.errors)
    for step in metadata.steps:
        message.metadata.steps.add(
            name=step.name,
            duration_ms=step.duration_ms,
            status=step.status,
            memory_mb=step.memory_mb,
        )
    return message


def from_message(message: Message) -> Query:
    metadata = message.metadata
    return Query(
        file_type=message.file_type,
        file_path=message.file_path,
        strategy=message.strategy,
        prompt_parts=list(message.prompt_parts),
        attachments=[Attachment(page=a.page, data=bytes(a.data)) for a in message.attachments],
        system=message.system,
        prompt=message.prompt,
        metadata=QueryMetadata(
            started_at=metadata.started_at,
            completed_at=metadata.completed_at,
            total_duration_ms=metadata.total_duration_ms,
            original_file_size=metadata.original_file_size,
            errors=list(metadata.errors),
            steps=[
                ProcessingStep(
                    name=s.name,
                    duration_ms=s.duration_ms,
                    status=s.status,
                    memory_mb=s.memory_mb,
                )
                for s in metadata.steps
            ],
        ),
    )


def encode(query: Query) -> bytes:
    return to_message(query).SerializeToString()


def decode(data: bytes) -> Query:
    """Parse wire bytes back into a Query.

    Raises:
        DecodeError: if the bytes are not a valid Query message.
    """
    message = QueryMessage()
    try:
        message.ParseFromString(data)
    except WireDecodeError as exc:
        raise DecodeError(f"invalid Query message: {exc}") from exc
    return from_message(message)
