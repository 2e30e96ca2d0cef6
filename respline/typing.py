from typing import Any, Callable, Optional, Union

EncodedT = Union[bytes, bytearray, memoryview]
DecodedT = Union[str, int, float]
EncodableT = Union[EncodedT, DecodedT]
ReplyCallbackT = Callable[[Any, Optional[Exception]], Any]
