"""Binding-table driven marshalling engine."""

from .codecs import DEFAULT_REGISTRY as DEFAULT_REGISTRY
from .codecs import Codec as Codec
from .codecs import DecodeError as DecodeError
from .codecs import EncodeError as EncodeError
from .codecs import WireTypeRegistry as WireTypeRegistry
from .codecs import decode as decode
from .codecs import encode as encode
from .config import MarshallerConfig as MarshallerConfig
from .config import UnmarshallerConfig as UnmarshallerConfig
from .marshaller import MarshallError as MarshallError
from .marshaller import RequestMarshaller as RequestMarshaller
from .marshaller import marshall as marshall
from .marshaller import marshall_shape as marshall_shape
from .request import Request as Request
from .request import RequestBuilder as RequestBuilder
from .serialization import InvalidArgument as InvalidArgument
from .serialization import ShapeValue as ShapeValue
from .serialization import Structured as Structured
from .serialization import StructuredValue as StructuredValue
from .serialization import shape_field as shape_field
from .tokens import ParseError as ParseError
from .tokens import Token as Token
from .tokens import TokenKind as TokenKind
from .tokens import TokenStream as TokenStream
from .tokens import json_tokens as json_tokens
from .tokens import value_tokens as value_tokens
from .types import *
from .unmarshaller import HttpResponse as HttpResponse
from .unmarshaller import ResponseUnmarshaller as ResponseUnmarshaller
from .unmarshaller import unmarshall as unmarshall
from .unmarshaller import unmarshall_list as unmarshall_list
from .unmarshaller import unmarshall_response as unmarshall_response
