# pgsql_scripts/functions.py
from alembic_utils.pg_function import PGFunction

# 엔티티 유형 → 식별번호 시퀀스 이름. 나머지 함수들이 공통으로 사용합니다.
number_sequence_name_func = PGFunction(
    schema="lims",
    signature="number_sequence_name(entity_type VARCHAR)",
    definition="""
    RETURNS TEXT AS $$
    BEGIN
        IF entity_type NOT IN ('collaborator', 'project', 'specimen', 'inventory', 'patient') THEN
            RAISE EXCEPTION 'Invalid entity type: %. Valid types: collaborator, project, specimen, inventory, patient', entity_type
                USING ERRCODE = '22023';
        END IF;
        RETURN 'lims.' || entity_type || '_number_seq';
    END;
    $$ LANGUAGE plpgsql IMMUTABLE;
    """
)

get_next_number_func = PGFunction(
    schema="lims",
    signature="get_next_number(entity_type VARCHAR)",
    definition="""
    -- 다음 일련번호를 원자적으로 발급합니다.
    -- nextval은 트랜잭션이 롤백되어도 되돌려지지 않으므로 한 번 발급된 번호는 재사용되지 않습니다.
    RETURNS INTEGER AS $$
    BEGIN
        RETURN nextval(lims.number_sequence_name(entity_type)::regclass);
    END;
    $$ LANGUAGE plpgsql;
    """
)

peek_next_number_func = PGFunction(
    schema="lims",
    signature="peek_next_number(entity_type VARCHAR)",
    definition="""
    -- 다음 get_next_number() 호출이 반환할 값을 시퀀스를 진행시키지 않고 조회합니다.
    RETURNS INTEGER AS $$
    DECLARE
        next_val INTEGER;
    BEGIN
        EXECUTE 'SELECT last_value + CASE WHEN is_called THEN 1 ELSE 0 END FROM '
            || lims.number_sequence_name(entity_type)
        INTO next_val;
        RETURN next_val;
    END;
    $$ LANGUAGE plpgsql;
    """
)

sync_number_sequence_func = PGFunction(
    schema="lims",
    signature="sync_number_sequence(entity_type VARCHAR)",
    definition="""
    -- 이관(preserve) 모드로 저장된 번호보다 시퀀스가 뒤처져 있으면 최대값 이후로 앞당깁니다.
    -- 시퀀스를 되돌리지는 않습니다. 반환값은 다음에 발급될 번호입니다.
    RETURNS INTEGER AS $$
    DECLARE
        seq_name TEXT := lims.number_sequence_name(entity_type);
        max_val INTEGER;
        last_val BIGINT;
        called BOOLEAN;
    BEGIN
        CASE entity_type
            WHEN 'collaborator' THEN
                SELECT COALESCE(MAX(collaborator_number), 0) INTO max_val FROM lims.collaborators;
            WHEN 'project' THEN
                SELECT COALESCE(MAX(project_number), 0) INTO max_val FROM lims.projects;
            WHEN 'specimen' THEN
                SELECT COALESCE(MAX(specimen_number), 0) INTO max_val FROM lims.specimens;
            WHEN 'inventory' THEN
                SELECT COALESCE(MAX(inventory_id), 0) INTO max_val FROM lims.inventory;
            WHEN 'patient' THEN
                SELECT COALESCE(MAX(patient_number), 0) INTO max_val FROM lims.patients;
        END CASE;

        EXECUTE 'SELECT last_value, is_called FROM ' || seq_name INTO last_val, called;

        IF max_val > last_val OR (max_val = last_val AND NOT called) THEN
            PERFORM setval(seq_name::regclass, max_val, true);
            RETURN max_val + 1;
        END IF;
        RETURN last_val + CASE WHEN called THEN 1 ELSE 0 END;
    END;
    $$ LANGUAGE plpgsql;
    """
)

reset_number_sequence_func = PGFunction(
    schema="lims",
    signature="reset_number_sequence(entity_type VARCHAR, next_value INTEGER)",
    definition="""
    -- 다음 발급 번호를 지정합니다. 이미 사용된 번호 이하로는 되돌릴 수 없습니다.
    RETURNS INTEGER AS $$
    DECLARE
        seq_name TEXT := lims.number_sequence_name(entity_type);
        max_val INTEGER;
    BEGIN
        IF next_value IS NULL OR next_value < 1 THEN
            RAISE EXCEPTION 'Sequence value must be a positive integer' USING ERRCODE = '22023';
        END IF;

        CASE entity_type
            WHEN 'collaborator' THEN
                SELECT COALESCE(MAX(collaborator_number), 0) INTO max_val FROM lims.collaborators;
            WHEN 'project' THEN
                SELECT COALESCE(MAX(project_number), 0) INTO max_val FROM lims.projects;
            WHEN 'specimen' THEN
                SELECT COALESCE(MAX(specimen_number), 0) INTO max_val FROM lims.specimens;
            WHEN 'inventory' THEN
                SELECT COALESCE(MAX(inventory_id), 0) INTO max_val FROM lims.inventory;
            WHEN 'patient' THEN
                SELECT COALESCE(MAX(patient_number), 0) INTO max_val FROM lims.patients;
        END CASE;

        IF next_value <= max_val THEN
            RAISE EXCEPTION 'Sequence value % would reuse an existing % number (max %)', next_value, entity_type, max_val
                USING ERRCODE = '22023';
        END IF;

        PERFORM setval(seq_name::regclass, next_value, false);
        RETURN next_value;
    END;
    $$ LANGUAGE plpgsql;
    """
)
