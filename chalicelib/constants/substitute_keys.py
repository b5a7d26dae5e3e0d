from_db = {
    'id_': 'id',
    'partkey': None,
    'sortkey': None,
    'ttl_': None,
    'record_type': None
}

to_db = {
    'id': 'id_'
}
