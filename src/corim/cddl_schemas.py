"""CDDL schemas for structural checks of CoRIM documents.

The schemas follow the CoRIM, CoTS and CoSERV drafts but are simplified
to what zcbor can handle: deeply nested type choices are collapsed to
``any`` and left to the semantic ``valid()`` checks, and items that cbor2
decodes into Python objects (tag 1 times, tag 37 UUIDs) are matched with
``any``.
"""

# Shared definitions, appended to every document schema
COMMON_CDDL = """
tag-id-type-choice = tstr / bstr .size 16
tag-identity-map = {
    0: tag-id-type-choice,   ; tag-id
    ? 1: uint,               ; tag-version
}

; #6.32(tstr), kept opaque
uri = any
; #6.1 times and #6.37 UUIDs decode to native objects
time = any
; tstr URI or #6.111(bstr) OID
profile-type-choice = any

class-map = {
    ? 0: any,                ; class-id
    ? 1: tstr,               ; vendor
    ? 2: tstr,               ; model
    ? 3: uint,               ; layer
    ? 4: uint,               ; index
}

environment-map = {
    ? 0: class-map,
    ? 1: any,                ; instance
    ? 2: any,                ; group
}
"""

COMID_CDDL = """
concise-mid-tag = {
    ? 0: tstr,               ; language
    1: tag-identity-map,
    ? 2: [+ comid-entity-map],
    ? 3: [+ linked-tag-map],
    4: triples-map,
}

tagged-concise-mid-tag = #6.506(concise-mid-tag)

comid-entity-map = {
    0: tstr,                 ; entity-name
    ? 1: uri,                ; reg-id
    2: [+ uint],             ; role
}

linked-tag-map = {
    0: tag-id-type-choice,   ; linked-tag-id
    1: uint,                 ; tag-rel
}

triples-map = {
    ? 0: [+ any],            ; reference-triples
    ? 1: [+ any],            ; endorsed-triples
    ? 2: [+ any],            ; identity-triples
    ? 3: [+ any],            ; attest-key-triples
    ? 4: [+ any],            ; dependency-triples
    ? 5: [+ any],            ; membership-triples
    ? 6: [+ any],            ; coswid-triples
    ? 7: [+ any],            ; conditional-endorsement-series-triples
}
""" + COMMON_CDDL

CORIM_CDDL = """
unsigned-corim-map = {
    0: tag-id-type-choice,   ; corim-id
    1: [+ bstr],             ; tags
    ? 2: [+ corim-locator-map],
    ? 3: profile-type-choice,
    ? 4: validity-map,
    ? 5: [+ corim-entity-map],
}

tagged-unsigned-corim-map = #6.501(unsigned-corim-map)

corim-locator-map = {
    0: uri,                  ; href
    ? 1: [int, bstr],        ; thumbprint
}

validity-map = {
    ? 0: time,               ; not-before
    1: time,                 ; not-after
}

corim-entity-map = {
    0: tstr,                 ; entity-name
    ? 1: uri,                ; reg-id
    2: [+ uint],             ; role
}
""" + COMMON_CDDL

COTS_CDDL = """
concise-ta-store-map = {
    ? 0: tstr,               ; language
    ? 1: tag-identity-map,
    2: [+ env-group],        ; environments
    ? 3: [+ tstr],           ; purposes
    ? 4: [+ any],            ; perm_claims
    ? 5: [+ any],            ; excl_claims
    6: tas-and-cas-map,      ; keys
}

tagged-concise-ta-store-map = #6.507(concise-ta-store-map)

env-group = {
    ? 1: environment-map,
    ? 2: any,                ; abbreviated swid tag
    ? 3: tstr,               ; named ta store
}

tas-and-cas-map = {
    0: [+ trust-anchor],     ; tastore.tas
    ? 1: [+ bstr],           ; tastore.cas
}

trust-anchor = [
    uint,                    ; format
    bstr,                    ; data
]
""" + COMMON_CDDL

COEV_CDDL = """
concise-evidence-map = {
    0: ev-triples-map,
    ? 1: any,                ; evidence-id
    ? 2: profile-type-choice,
}

tagged-concise-evidence = #6.571(concise-evidence-map)

ev-triples-map = {
    ? 0: [+ any],            ; evidence-triples
    ? 1: [+ any],            ; identity-triples
    ? 2: [+ any],            ; dependency-triples
    ? 3: [+ any],            ; membership-triples
    ? 4: [+ any],            ; coswid-triples
    ? 5: [+ any],            ; attest-key-triples
}
""" + COMMON_CDDL

COSERV_CDDL = """
coserv-map = {
    0: uint,                 ; artifact-type
    1: profile-type-choice,
    2: environment-selector-map,
    ? 3: time,               ; timestamp
    ? 4: uint,               ; result-type
    ? 5: result-set-map,
}

environment-selector-map = {
    ? 0: [+ class-map],      ; classes
    ? 1: [+ any],            ; instances
    ? 2: [+ any],            ; groups
}

result-set-map = {
    ? 0: [+ any],            ; rvq
    ? 1: [+ any],            ; evq
    ? 3: [+ any],            ; akq
    10: time,                ; expiry
    ? 11: [+ bstr],          ; source-artifacts
}
""" + COMMON_CDDL

# Default (schema, rule) pair per document kind, as used by the CLI
DOCUMENT_SCHEMAS = {
    "comid": (COMID_CDDL, "concise-mid-tag"),
    "corim": (CORIM_CDDL, "unsigned-corim-map"),
    "cots": (COTS_CDDL, "concise-ta-store-map"),
    "coev": (COEV_CDDL, "concise-evidence-map"),
    "coserv": (COSERV_CDDL, "coserv-map"),
}
