# Copyright 2026 fhirmodel Contributors
# SPDX-License-Identifier: Apache-2.0

"""Key/value (JSON) and XML codecs for record instances.

Both codecs expose the same functions; import the module for the format
you need, e.g. ``from fhirmodel.codec import xml_codec``.
"""

from fhirmodel.codec import dict_codec, xml_codec
from fhirmodel.codec.common import DeserializationResult

__all__ = [
    "DeserializationResult",
    "dict_codec",
    "xml_codec",
]
