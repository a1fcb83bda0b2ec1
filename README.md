# wasmbin

wasmbin is a pure-Python library for WebAssembly (MVP) binary modules. It can:

- decode `.wasm` bytes into typed Python objects and encode them back to bytes;
- fill in a module's function, global, table and linear-memory index spaces, and resolve its imports against other modules;
- check function bodies statically for stack and type errors.

It needs nothing outside the standard library.

## Installation

```
pip install .
```

## Decoding and encoding

`wasmbin.module` has two readers:

- `decode_module(reader)` parses the sections and nothing more.
- `read_module(reader, resolve=None)` decodes the module, resolves its imports when you give it a resolver, and then populates the index spaces.

```python
import io
from wasmbin.module import decode_module, read_module, encode_module

with open("program.wasm", "rb") as fh:
    raw = fh.read()

module = decode_module(io.BytesIO(raw))

out = io.BytesIO()
encode_module(out, module)
```

`encode_module` writes the sections in the order they were read, custom sections included. Exports are always written sorted by index and then by name. A module whose exports are already in that order therefore comes back byte for byte.

Once a module has been decoded, its sections are available as attributes: `types`, `imports`, `function`, `table`, `memory`, `global_section`, `export`, `start`, `elements`, `code`, `data`, plus the list `customs`. `module.custom("name")` returns the first custom section with the given name. `new_module()` returns an empty module with the usual sections already created.

## Index spaces

After `read_module` you can look things up:

```python
module = read_module(io.BytesIO(raw))

sig = module.get_function_sig(0)    # imported functions are counted first
print(sig)                          # e.g. <func [i64] -> [i64]>
fn = module.get_function(0)         # a Function, or None when out of range
gtype = module.get_global_type(0)   # a GlobalVar (type and mutability)
entry = module.get_global(0)        # a GlobalEntry, or None
elem = module.get_table_element(0)  # element of the first table
byte = module.get_linear_memory_data(0)
value = module.exec_init_expr(entry.init)  # InitValue(type, value), or None
```

When a module carries a `name` custom section with function names, those names are copied into `Function.name`.

### Resolving imports

A resolver is any callable that takes an imported module's name and returns a `Module`:

```python
from wasmbin.module import read_module

def resolve(name):
    with open(f"{name}.wasm", "rb") as fh:
        return read_module(fh)

with open("main.wasm", "rb") as fh:
    module = read_module(fh, resolve)
```

If an import cannot be resolved, one of the errors in `wasmbin.imports` is raised:

- `ExportNotFoundError`
- `KindMismatchError`
- `InvalidImportError` (the signature does not match)
- `ImportMutGlobalError`
- `NoExportsInImportedModuleError`
- `InvalidFunctionIndexError`, `InvalidTableIndexError` or `InvalidLinearMemoryIndexError`

## Validation

```python
from wasmbin.validation import verify_module
from wasmbin.checker import ValidationError

try:
    verify_module(module)
except ValidationError as exc:
    print(exc)        # error while validating function N at offset M: ...
    print(exc.cause)  # the underlying error, e.g. InvalidTypeError
```

`verify_module` checks every function in the function index space, so build that space first with `read_module`. If the module has a function section but no code section, it raises `NoSectionError`. `verify_body(sig, body, module)` checks a single body and returns the `MockVM` (from `wasmbin.checker`) in its final state.

## Lower-level pieces

- `wasmbin.leb128`: LEB128 integers. It provides `read_var_uint32`, `read_var_int32`, `read_var_int64`, `write_var_uint32` and `write_var_int64`, along with `append_uleb128` and `append_sleb128`.
- `wasmbin.binary`: fixed-width and length-prefixed reads and writes, and `WasmError`.
- `wasmbin.types`: `ValueType`, `ElemType`, `External`, `FunctionSig`, `GlobalVar`, `ResizableLimits`, `Table` and `Memory`. Each has `read`/`write` methods.
- `wasmbin.sections`: one class per section kind, each with `read_payload` and `write_payload`, plus the entry types (`GlobalEntry`, `ExportEntry`, `ElementSegment`, `FunctionBody`, `LocalEntry`, `DataSegment`).
- `wasmbin.operators`: the opcode table. `lookup(code)` returns an `Op` carrying its name, argument types and return type. Unknown or reserved codes raise `InvalidOpcodeError`.
- `wasmbin.names`: the `name` custom section (`NameSection`, `NameMap`, `ModuleName`, `FunctionNames`, `LocalNames`).
- `wasmbin.init_expr`: `read_init_expr` and `exec_init_expr` for constant initializer expressions.
- `wasmbin.readpos`: `ReadPos`, a reader that counts the bytes it has consumed.

Errors about a module's contents derive from `wasmbin.binary.WasmError`. Truncated input raises `EOFError`. Malformed LEB128 integers raise `wasmbin.leb128.LEB128Error`, a subclass of `ValueError`.

To send the decoder's debug log to stderr, call `wasmbin.module.set_debug_mode(True)`.

## What it does not do

wasmbin reads, writes and checks modules. It does not:

- run them: there is no interpreter, and `Function.host` only records a callable;
- print or parse the WebAssembly text format;
- provide a command-line tool.

## Running the tests

```
pip install ".[test]"
pytest
```