"""
Database module for Attendance System
Quản lý cơ sở dữ liệu SQLite cho hệ thống điểm danh
"""

import json
import logging
import sqlite3
import threading
from datetime import date, datetime
from pathlib import Path

from core.types import as_descriptor
from logging_config import database_logger

logger = logging.getLogger('database')

# Tên ngày theo định dạng của API gốc (Minggu = Chủ nhật)
WEEKDAY_NAMES = ["Senin", "Selasa", "Rabu", "Kamis", "Jumat", "Sabtu", "Minggu"]
DEFAULT_STATUS = 'Hadir'


class DuplicateStudentError(ValueError):
    """NIM đã được đăng ký"""


class DatabaseManager:
    def __init__(self, db_path="attendance_system.db"):
        self.db_path = str(db_path)
        # Database in-memory chỉ tồn tại trong một kết nối nên phải dùng chung
        self._shared_conn = None
        if self.db_path == ':memory:':
            self._shared_conn = self._connect()
        else:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.init_database()

    def _connect(self):
        conn = sqlite3.connect(self.db_path, check_same_thread=self.db_path != ':memory:')
        conn.row_factory = sqlite3.Row  # Cho phép truy cập theo tên cột
        return conn

    def get_connection(self):
        """Tạo kết nối database"""
        if self._shared_conn is not None:
            return self._shared_conn
        return self._connect()

    def init_database(self):
        """Khởi tạo database và các bảng"""
        with self.get_connection() as conn:
            cursor = conn.cursor()

            # Bảng người dùng đã đăng ký khuôn mặt
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    full_name VARCHAR(100) NOT NULL,
                    student_id VARCHAR(20) UNIQUE NOT NULL,
                    descriptor TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    is_active BOOLEAN DEFAULT 1
                )
            ''')

            # Bảng điểm danh
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS attendance (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER,
                    student_id VARCHAR(20) NOT NULL,
                    student_name VARCHAR(100) NOT NULL,
                    weekday VARCHAR(10) NOT NULL,
                    attendance_date DATE NOT NULL,
                    attendance_time TIME NOT NULL,
                    status VARCHAR(20) DEFAULT 'Hadir',
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (user_id) REFERENCES users(id)
                )
            ''')

            # Mỗi NIM chỉ được điểm danh một lần mỗi ngày
            cursor.execute('''
                CREATE UNIQUE INDEX IF NOT EXISTS idx_attendance_student_date
                ON attendance(student_id, attendance_date)
            ''')

            conn.commit()
            logger.info("Database initialized at %s", self.db_path)

    # === CHUYỂN ĐỔI DỮ LIỆU ===

    @staticmethod
    def _user_to_dict(row, include_descriptor=False):
        data = {
            'id': row['id'],
            'nama': row['full_name'],
            'nim': row['student_id'],
            'created_at': row['created_at'],
        }
        if include_descriptor:
            data['descriptor'] = json.loads(row['descriptor'])
        return data

    @staticmethod
    def _attendance_to_dict(row):
        return {
            'id': row['id'],
            'user_id': row['user_id'],
            'nama': row['student_name'],
            'nim': row['student_id'],
            'hari': row['weekday'],
            'tanggal': row['attendance_date'],
            'jam': row['attendance_time'],
            'status': row['status'],
        }

    # === QUẢN LÝ NGƯỜI DÙNG ===

    def add_user(self, full_name, student_id, descriptor):
        """Đăng ký người dùng mới với descriptor 128 chiều"""
        full_name = (full_name or '').strip()
        student_id = (student_id or '').strip()
        if not full_name or not student_id:
            raise ValueError("Nama dan NIM wajib diisi")
        vector = as_descriptor(descriptor)
        payload = json.dumps([float(v) for v in vector])

        with self.get_connection() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute('''
                    INSERT INTO users (full_name, student_id, descriptor)
                    VALUES (?, ?, ?)
                ''', (full_name, student_id, payload))
            except sqlite3.IntegrityError as exc:
                raise DuplicateStudentError(f"NIM {student_id} sudah terdaftar") from exc
            conn.commit()
            user_id = cursor.lastrowid

        database_logger.log_query('INSERT', 'users')
        logger.info("Registered user %s (%s)", full_name, student_id)
        return self.get_user(user_id)

    def get_user(self, user_id):
        """Lấy thông tin người dùng theo id"""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('SELECT * FROM users WHERE id = ? AND is_active = 1', (user_id,))
            row = cursor.fetchone()
            return self._user_to_dict(row) if row else None

    def get_user_by_student_id(self, student_id):
        """Lấy thông tin người dùng theo NIM"""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                'SELECT * FROM users WHERE student_id = ? AND is_active = 1',
                (student_id,),
            )
            row = cursor.fetchone()
            return self._user_to_dict(row) if row else None

    def get_all_users(self):
        """Danh sách người dùng theo thứ tự đăng ký"""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('SELECT * FROM users WHERE is_active = 1 ORDER BY id')
            return [self._user_to_dict(row) for row in cursor.fetchall()]

    def get_user_descriptors(self):
        """Danh sách người dùng kèm descriptor, theo thứ tự đăng ký"""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('SELECT * FROM users WHERE is_active = 1 ORDER BY id')
            rows = cursor.fetchall()

        users = []
        for row in rows:
            try:
                users.append(self._user_to_dict(row, include_descriptor=True))
            except (TypeError, ValueError) as exc:
                database_logger.log_error('get_user_descriptors', f"user {row['id']}: {exc}")
        database_logger.log_query('SELECT', 'users')
        return users

    def delete_user(self, user_id):
        """Xóa người dùng; lịch sử điểm danh được giữ lại"""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('DELETE FROM users WHERE id = ?', (user_id,))
            conn.commit()
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted user %s", user_id)
        return deleted

    # === ĐIỂM DANH ===

    def mark_attendance(self, student_id, student_name, status=DEFAULT_STATUS, now=None):
        """Điểm danh sinh viên, mỗi NIM tối đa một lần mỗi ngày.

        Returns:
            (record, created): bản ghi điểm danh và cờ cho biết có tạo mới hay không
        """
        if not student_id or not student_name:
            raise ValueError("Nama dan NIM wajib diisi")
        now = now or datetime.now()
        today = now.date().isoformat()

        with self.get_connection() as conn:
            cursor = conn.cursor()

            # Unique index (student_id, attendance_date) quyết định ai ghi trước
            cursor.execute('''
                INSERT OR IGNORE INTO attendance (
                    user_id, student_id, student_name, weekday,
                    attendance_date, attendance_time, status
                )
                VALUES (
                    (SELECT id FROM users WHERE student_id = ?),
                    ?, ?, ?, ?, ?, ?
                )
            ''', (
                student_id,
                student_id,
                student_name,
                WEEKDAY_NAMES[now.weekday()],
                today,
                now.strftime('%H:%M:%S'),
                status or DEFAULT_STATUS,
            ))
            created = cursor.rowcount == 1
            conn.commit()

            cursor.execute('''
                SELECT * FROM attendance
                WHERE student_id = ? AND attendance_date = ?
            ''', (student_id, today))
            record = self._attendance_to_dict(cursor.fetchone())

        if not created:
            logger.info("Student %s already marked today", student_name)
            return record, False

        database_logger.log_query('INSERT', 'attendance')
        logger.info("Marked attendance for %s (%s)", student_name, student_id)
        return record, True

    def get_student_attendance_history(self, student_id, limit=30):
        """Lấy lịch sử điểm danh của sinh viên"""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT * FROM attendance
                WHERE student_id = ?
                ORDER BY attendance_date DESC, attendance_time DESC, id DESC
                LIMIT ?
            ''', (student_id, limit))
            return [self._attendance_to_dict(row) for row in cursor.fetchall()]

    def get_attendance_stats(self, recent_limit=10, today=None):
        """Lấy thống kê điểm danh"""
        today = (today or date.today()).isoformat()

        with self.get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute('SELECT COUNT(*) FROM users WHERE is_active = 1')
            total_users = cursor.fetchone()[0]

            cursor.execute('SELECT COUNT(*) FROM attendance')
            total_attendance = cursor.fetchone()[0]

            cursor.execute('SELECT COUNT(*) FROM attendance WHERE attendance_date = ?', (today,))
            today_attendance = cursor.fetchone()[0]

            cursor.execute('''
                SELECT * FROM attendance
                ORDER BY attendance_date DESC, attendance_time DESC, id DESC
                LIMIT ?
            ''', (recent_limit,))
            recent = [self._attendance_to_dict(row) for row in cursor.fetchall()]

        return {
            'totalUsers': total_users,
            'totalAbsensi': total_attendance,
            'todayAbsensi': today_attendance,
            'recentAbsensi': recent,
        }


_db = None
_db_lock = threading.Lock()


def get_db():
    """Trả về DatabaseManager dùng chung cho config.DATABASE_PATH"""
    global _db
    with _db_lock:
        if _db is None:
            import config
            _db = DatabaseManager(config.DATABASE_PATH)
        return _db
