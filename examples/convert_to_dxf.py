import ezflat


result = ezflat.to_dxf(
    "examples/data/bracket.dxf",
    "/tmp/bracket_out.dxf",
    types="LWPOLYLINE CIRCLE ARC",
    dxf_version="R2010",
)
print(result)
