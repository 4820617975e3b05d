def test_logging_save_counts_emitted(client, caplog):
    caplog.set_level("DEBUG")
    res = client.post(
        "/api/races/RACE1/results",
        json={"outcomes": [
            {"racer_id": "R1", "status": "FINISHED", "laps_completed": 3, "finish_time": "00:10:00.000"},
            {"racer_id": "R2", "status": "DNF", "laps_completed": 1},
        ]},
    )
    assert res.status_code == 200
    messages = [r.getMessage() for r in caplog.records]
    assert "score_run race=RACE1 outcomes=2 finishers=1" in messages
    assert "upsert_results race=RACE1 rows=2" in messages
