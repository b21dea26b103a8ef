# This file describes the documents stored by the API server so that they
# can be statically validated before they are written to the database.
#
# See https://github.com/vdbergh/vtjson for a description of the schema format.
#
# The schemas only describe the shape of a document. Gameplay invariants
# (e.g. working carpenters never exceeding available carpenters) belong to
# the services that mutate the documents, see dragalia.fort.

from datetime import datetime, timezone

from vtjson import anything, fields, ge, intersect, regex

device_account_id = regex(r"[0-9A-Za-z_\-]{1,64}", name="device_account_id")
datetime_utc = intersect(datetime, fields({"tzinfo": timezone.utc}))

uint = intersect(int, ge(0))

kvstore_schema = {
    "_id": str,
    "value": anything,
}

account_schema = {
    "_id": device_account_id,
    "viewer_id": uint,
    "created": datetime_utc,
}

fort_detail_schema = {
    "_id": device_account_id,
    "carpenter_num": uint,
    "max_carpenter_count": uint,
    "working_carpenter_num": uint,
}
