"""Print the Supabase schema for ExamHall. Run the output in the Supabase SQL Editor."""
import os

from dotenv import load_dotenv

load_dotenv()

SUPABASE_URL = os.getenv("SUPABASE_URL")

# SQL schema
SCHEMA_SQL = """
-- Accounts (one row per auth user, created by the signup trigger)
CREATE TABLE IF NOT EXISTS profiles (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID UNIQUE REFERENCES auth.users(id) ON DELETE CASCADE,
    email TEXT NOT NULL,
    full_name TEXT NOT NULL,
    is_student BOOLEAN DEFAULT TRUE,
    is_admin BOOLEAN DEFAULT FALSE,
    is_super_admin BOOLEAN DEFAULT FALSE,
    admin_approved BOOLEAN DEFAULT FALSE,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

-- Assessments
CREATE TABLE IF NOT EXISTS exams (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    title TEXT NOT NULL,
    exam_name TEXT,
    description TEXT,
    duration_minutes INT NOT NULL DEFAULT 60 CHECK (duration_minutes >= 0),
    exam_start_at TIMESTAMPTZ,
    exam_entry_block_at TIMESTAMPTZ,
    exam_end_at TIMESTAMPTZ,
    exam_privacy VARCHAR(10) DEFAULT 'private' CHECK (exam_privacy IN ('public', 'private')),
    is_active BOOLEAN DEFAULT TRUE,
    total_marks INT NOT NULL DEFAULT 0 CHECK (total_marks >= 0),
    created_by UUID REFERENCES profiles(id),
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

-- Items (four choices, one correct label, positive weight)
CREATE TABLE IF NOT EXISTS questions (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    exam_id UUID REFERENCES exams(id) ON DELETE CASCADE,
    question_text TEXT NOT NULL,
    option_a TEXT NOT NULL,
    option_b TEXT NOT NULL,
    option_c TEXT NOT NULL,
    option_d TEXT NOT NULL,
    correct_answer CHAR(1) NOT NULL CHECK (correct_answer IN ('A', 'B', 'C', 'D')),
    marks INT NOT NULL DEFAULT 1 CHECK (marks > 0),
    created_at TIMESTAMPTZ DEFAULT NOW()
);

-- Attempt results: the row's existence is the one-attempt lock
CREATE TABLE IF NOT EXISTS exam_results (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    exam_id UUID REFERENCES exams(id) ON DELETE CASCADE,
    student_id UUID REFERENCES profiles(id) ON DELETE CASCADE,
    started_at TIMESTAMPTZ,
    completed_at TIMESTAMPTZ,
    score NUMERIC NOT NULL DEFAULT 0,
    total_marks INT NOT NULL,
    percentage NUMERIC NOT NULL DEFAULT 0,
    answers JSONB DEFAULT '{}'::jsonb,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    UNIQUE (exam_id, student_id)
);

-- Reference network points (append-only, written on supervisor login)
CREATE TABLE IF NOT EXISTS admin_ips (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    admin_id UUID REFERENCES profiles(id) ON DELETE CASCADE,
    ip_address TEXT NOT NULL,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

-- Profile row from signup metadata
CREATE OR REPLACE FUNCTION handle_new_user() RETURNS TRIGGER AS $$
BEGIN
    INSERT INTO profiles (user_id, email, full_name, is_admin, is_student)
    VALUES (
        NEW.id,
        NEW.email,
        COALESCE(NEW.raw_user_meta_data ->> 'full_name', NEW.email),
        COALESCE((NEW.raw_user_meta_data ->> 'is_admin')::boolean, FALSE),
        COALESCE((NEW.raw_user_meta_data ->> 'is_student')::boolean, TRUE)
    );
    RETURN NEW;
END;
$$ LANGUAGE plpgsql SECURITY DEFINER;

DROP TRIGGER IF EXISTS on_auth_user_created ON auth.users;
CREATE TRIGGER on_auth_user_created AFTER INSERT ON auth.users
    FOR EACH ROW EXECUTE FUNCTION handle_new_user();

-- Create indexes for performance
CREATE INDEX IF NOT EXISTS idx_questions_exam_id ON questions(exam_id);
CREATE INDEX IF NOT EXISTS idx_exam_results_student_id ON exam_results(student_id);
CREATE INDEX IF NOT EXISTS idx_admin_ips_created_at ON admin_ips(created_at DESC);
"""


def main():
    print("ExamHall Supabase schema")
    print(f"URL: {SUPABASE_URL or '(SUPABASE_URL not set)'}")
    print("\nThe Supabase client cannot run DDL; paste this into Supabase SQL Editor:")
    print("Go to: https://app.supabase.com > SQL Editor > New Query")
    print(SCHEMA_SQL)


if __name__ == "__main__":
    main()
